import threading
from datetime import date, datetime, time, timezone as dt_timezone
from unittest.mock import patch

from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase

from accounts.models import User
from common.utils import DestinationGroups, compatible, normalize_destination
from rides.models import ChatMessage, PopularDestination, Ride, RideParticipant
from services.expiration import find_expired_ride_ids, retire_ride, sweep_expired_rides
from services.expiration import sweeper
from services.matching import find_matches
from services.ride_management import (
	AlreadyJoinedError,
	NotInRideError,
	RideAlreadyCompletedError,
	RideClosedError,
	RideConflictError,
	RideForbiddenError,
	RideFullError,
	RideHasParticipantsError,
	RideNotFoundError,
	RideValidationError,
	SelfJoinRejectedError,
	complete_ride,
	create_ride,
	delete_ride,
	join_ride,
	leave_ride,
	post_message,
	request_ride,
)

RIDE_DATE = date(2025, 1, 10)


def make_user(username):
	return User.objects.create_user(
		username=username,
		password='pass1234',
		email='%s@campus.test' % username,
	)


def make_ride(creator, destination='Railway Station', start=time(9, 0), end=time(10, 0), ride_date=RIDE_DATE):
	return create_ride(
		creator=creator,
		destination=destination,
		date=ride_date,
		time_window_start=start,
		time_window_end=end,
	).ride


class DestinationGroupTests(TestCase):
	def setUp(self):
		self.groups = DestinationGroups(
			groups={
				'transport_hub': ('Railway Station', 'Bus Stand'),
				'shopping': ('Jio Mart', 'GV Mall'),
				'theatres': ('Connplex Cinemas',),
			},
			overlaps=(('transport_hub', 'shopping'),),
		)

	def test_normalize_destination_folds_case_and_spacing(self):
		self.assertEqual(normalize_destination('  Railway   STATION '), 'railway station')
		self.assertEqual(normalize_destination(None), '')

	def test_same_place_is_exact_match(self):
		self.assertEqual(self.groups.match_tier('Bus Stand', 'bus stand'), 0)
		self.assertEqual(self.groups.match_tier('Unknown Cafe', 'unknown cafe'), 0)

	def test_group_members_and_overlapping_groups_match(self):
		self.assertEqual(self.groups.match_tier('Railway Station', 'Bus Stand'), 1)
		self.assertEqual(self.groups.match_tier('GV Mall', 'Railway Station'), 1)

	def test_unrelated_destinations_do_not_match(self):
		self.assertIsNone(self.groups.match_tier('Connplex Cinemas', 'Bus Stand'))
		self.assertIsNone(self.groups.match_tier('Unknown Cafe', 'Bus Stand'))
		self.assertIsNone(self.groups.match_tier('', ''))

	def test_compatibility_is_symmetric(self):
		places = ['Railway Station', 'Bus Stand', 'Jio Mart', 'GV Mall', 'Connplex Cinemas', 'Elsewhere']
		for a in places:
			for b in places:
				self.assertEqual(self.groups.compatible(a, b), self.groups.compatible(b, a), (a, b))

	def test_duplicate_member_rejected(self):
		with self.assertRaises(ValueError):
			DestinationGroups(groups={'a': ('Bus Stand',), 'b': ('bus stand',)})

	def test_unknown_overlap_group_rejected(self):
		with self.assertRaises(ValueError):
			DestinationGroups(groups={'a': ('Bus Stand',)}, overlaps=(('a', 'missing'),))

	def test_table_is_read_only(self):
		with self.assertRaises(TypeError):
			self.groups.groups['new'] = ('Somewhere',)

	def test_configured_table_links_transport_and_shopping(self):
		self.assertTrue(compatible('Vijetha Mart', 'Railway Station'))
		self.assertTrue(compatible('Sri Ranga Mahal Theatre', 'Connplex Cinemas'))
		self.assertFalse(compatible('NIT Back Gate', 'NIT Front Gate'))


class RideMatcherTests(TestCase):
	def setUp(self):
		self.requester = make_user('requester')
		self.alice = make_user('alice')
		self.bob = make_user('bob')

	def _match(self, destination='Railway Station', start=time(9, 0), end=time(10, 0), **kwargs):
		return find_matches(destination, start, end, RIDE_DATE, requester_id=self.requester.id, **kwargs)

	def test_exact_destination_ranked_before_group_match(self):
		group_ride = make_ride(self.alice, destination='Bus Stand', start=time(9, 0))
		exact_ride = make_ride(self.bob, destination='Railway Station', start=time(9, 45), end=time(11, 0))

		self.assertEqual(self._match(), [exact_ride, group_ride])

	def test_closer_start_time_ranked_first(self):
		later = make_ride(self.alice, start=time(9, 40), end=time(10, 30))
		closer = make_ride(self.bob, start=time(9, 10), end=time(10, 30))

		self.assertEqual(self._match(), [closer, later])

	def test_window_overlap_is_inclusive(self):
		touching = make_ride(self.alice, start=time(10, 0), end=time(11, 0))
		make_ride(self.bob, start=time(10, 1), end=time(11, 0))

		self.assertEqual(self._match(), [touching])

	def test_excludes_other_dates_and_incompatible_destinations(self):
		make_ride(self.alice, ride_date=date(2025, 1, 11))
		make_ride(self.bob, destination='Connplex Cinemas')

		self.assertEqual(self._match(), [])

	def test_excludes_own_and_already_joined_rides(self):
		make_ride(self.requester)
		joined = make_ride(self.alice)
		join_ride(self.requester, joined.id)

		self.assertEqual(self._match(), [])

	def test_excludes_full_and_closed_rides(self):
		full = make_ride(self.alice)
		Ride.objects.filter(id=full.id).update(status='full')
		cancelled = make_ride(self.bob)
		Ride.objects.filter(id=cancelled.id).update(status='cancelled')

		self.assertEqual(self._match(), [])

	def test_limit_caps_results(self):
		for index in range(4):
			make_ride(make_user('creator%d' % index))

		self.assertEqual(len(self._match(limit=2)), 2)

	def test_storage_failure_returns_empty_list(self):
		make_ride(self.alice)

		with patch.object(Ride.objects, 'open', side_effect=DatabaseError('down')):
			with self.assertLogs('services.matching.ride_matcher', level='ERROR'):
				self.assertEqual(self._match(), [])


class RideRequestTests(TestCase):
	def setUp(self):
		self.alice = make_user('alice')
		self.bob = make_user('bob')

	def test_request_without_matches_creates_waiting_ride(self):
		result = request_ride(self.alice, 'Railway Station', RIDE_DATE, time(9, 0), time(10, 0), notes='2 bags')

		ride = result.ride
		self.assertEqual(result.matches, [])
		self.assertEqual(ride.status, 'waiting')
		self.assertEqual(ride.current_seat_count, 0)
		self.assertFalse(ride.creator_seated)
		self.assertEqual(ride.max_seats, 6)
		self.assertFalse(RideParticipant.objects.filter(ride=ride).exists())
		self.assertEqual(PopularDestination.objects.get(destination='Railway Station').count, 1)

	def test_request_with_matches_returns_candidates(self):
		existing = make_ride(self.alice)

		result = request_ride(self.bob, 'Bus Stand', RIDE_DATE, time(9, 30), time(10, 30))

		self.assertIsNone(result.ride)
		self.assertEqual(result.matches, [existing])
		self.assertEqual(Ride.objects.count(), 1)

	def test_forced_request_skips_matching(self):
		make_ride(self.alice)

		result = request_ride(self.bob, 'Railway Station', RIDE_DATE, time(9, 0), time(10, 0), force=True)

		self.assertIsNotNone(result.ride)
		self.assertEqual(Ride.objects.count(), 2)

	def test_invalid_time_window_rejected(self):
		with self.assertRaises(RideValidationError):
			request_ride(self.alice, 'Railway Station', RIDE_DATE, time(10, 0), time(10, 0))

	def test_blank_destination_rejected(self):
		with self.assertRaises(RideValidationError):
			create_ride(self.alice, '   ', RIDE_DATE, time(9, 0), time(10, 0))


class RideLifecycleTests(TestCase):
	def setUp(self):
		self.alice = make_user('alice')
		self.bob = make_user('bob')
		self.carol = make_user('carol')
		self.ride = make_ride(self.alice)

	def _participant_ids(self):
		return set(RideParticipant.objects.filter(ride=self.ride).values_list('user_id', flat=True))

	def test_first_join_seats_creator_and_joiner(self):
		result = join_ride(self.bob, self.ride.id)

		self.ride.refresh_from_db()
		self.assertTrue(result.extra['first_join'])
		self.assertEqual(self._participant_ids(), {self.alice.id, self.bob.id})
		self.assertEqual(self.ride.current_seat_count, 2)
		self.assertTrue(self.ride.creator_seated)
		self.assertEqual(self.ride.status, 'active')

	def test_ride_fills_then_rejects_next_join(self):
		join_ride(self.bob, self.ride.id)
		join_ride(self.carol, self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 3)

		for name in ('dave', 'erin', 'frank'):
			join_ride(make_user(name), self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 6)
		self.assertEqual(self.ride.status, 'full')

		with self.assertRaises(RideFullError):
			join_ride(make_user('grace'), self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 6)

	def test_first_join_needs_two_free_seats(self):
		Ride.objects.filter(id=self.ride.id).update(max_seats=1)

		with self.assertRaises(RideFullError):
			join_ride(self.bob, self.ride.id)
		self.assertEqual(self._participant_ids(), set())

	def test_join_rejections(self):
		with self.assertRaises(SelfJoinRejectedError):
			join_ride(self.alice, self.ride.id)

		join_ride(self.bob, self.ride.id)
		with self.assertRaises(AlreadyJoinedError):
			join_ride(self.bob, self.ride.id)

		with self.assertRaises(RideNotFoundError):
			join_ride(self.carol, self.ride.id + 100)

		Ride.objects.filter(id=self.ride.id).update(status='cancelled')
		with self.assertRaises(RideNotFoundError):
			join_ride(self.carol, self.ride.id)

	def test_join_errors_are_conflicts(self):
		self.assertTrue(issubclass(SelfJoinRejectedError, RideConflictError))
		self.assertTrue(issubclass(AlreadyJoinedError, RideConflictError))
		self.assertTrue(issubclass(RideFullError, RideConflictError))

	def test_participant_leave_frees_seat(self):
		join_ride(self.bob, self.ride.id)
		join_ride(self.carol, self.ride.id)

		leave_ride(self.carol, self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 2)
		self.assertEqual(self.ride.status, 'active')
		self.assertEqual(self._participant_ids(), {self.alice.id, self.bob.id})

	def test_leave_from_full_ride_reopens_it(self):
		join_ride(self.bob, self.ride.id)
		for name in ('carol2', 'dave', 'erin', 'frank'):
			join_ride(make_user(name), self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'full')

		leave_ride(self.bob, self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'active')
		self.assertEqual(self.ride.current_seat_count, 5)

	def test_creator_leave_transfers_ownership(self):
		join_ride(self.bob, self.ride.id)

		result = leave_ride(self.alice, self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(result.extra['new_creator_id'], self.bob.id)
		self.assertEqual(self.ride.creator_id, self.bob.id)
		self.assertEqual(self.ride.current_seat_count, 1)
		self.assertEqual(self.ride.status, 'active')
		self.assertEqual(self._participant_ids(), set())
		self.assertTrue(self.ride.is_occupant(self.bob.id))

	def test_ownership_goes_to_earliest_joined(self):
		join_ride(self.bob, self.ride.id)
		join_ride(self.carol, self.ride.id)

		leave_ride(self.alice, self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.creator_id, self.bob.id)
		self.assertEqual(self.ride.current_seat_count, 2)

		leave_ride(self.bob, self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.creator_id, self.carol.id)
		self.assertEqual(self.ride.current_seat_count, 1)

		result = leave_ride(self.carol, self.ride.id)
		self.ride.refresh_from_db()
		self.assertTrue(result.extra['cancelled'])
		self.assertEqual(self.ride.status, 'cancelled')
		self.assertEqual(self.ride.current_seat_count, 0)

	def test_leave_rejections(self):
		with self.assertRaises(NotInRideError):
			leave_ride(self.bob, self.ride.id)

		# An unseated creator holds no seat to give up
		with self.assertRaises(NotInRideError):
			leave_ride(self.alice, self.ride.id)

		join_ride(self.bob, self.ride.id)
		complete_ride(self.bob, self.ride.id)
		with self.assertRaises(RideClosedError):
			leave_ride(self.bob, self.ride.id)

	def test_complete_ride(self):
		join_ride(self.bob, self.ride.id)

		with self.assertRaises(RideForbiddenError):
			complete_ride(self.carol, self.ride.id)

		complete_ride(self.bob, self.ride.id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'completed')
		self.assertEqual(self.ride.completed_by, self.bob)
		self.assertIsNotNone(self.ride.completed_at)

		with self.assertRaises(RideAlreadyCompletedError):
			complete_ride(self.alice, self.ride.id)

	def test_delete_ride_rules(self):
		with self.assertRaises(RideForbiddenError):
			delete_ride(self.bob, self.ride.id)

		join_ride(self.bob, self.ride.id)
		with self.assertRaises(RideHasParticipantsError):
			delete_ride(self.alice, self.ride.id)

		leave_ride(self.bob, self.ride.id)
		result = delete_ride(self.alice, self.ride.id)
		self.assertEqual(result.extra['ride_id'], self.ride.id)
		self.assertFalse(Ride.objects.filter(id=self.ride.id).exists())

	def test_completed_ride_cannot_be_deleted(self):
		join_ride(self.bob, self.ride.id)
		complete_ride(self.alice, self.ride.id)

		with self.assertRaises(RideConflictError):
			delete_ride(self.alice, self.ride.id)

	@patch('services.ride_management.ride_lifecycle.notify_ride_group')
	def test_events_sent_after_commit(self, mock_notify):
		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			join_ride(self.bob, self.ride.id)

		self.assertEqual(len(callbacks), 1)
		mock_notify.assert_called_once()
		args = mock_notify.call_args[0]
		self.assertEqual(args[0], self.ride.id)
		self.assertEqual(args[1], 'user_joined')
		self.assertEqual(args[3]['seat_count'], 2)

	@patch('services.ride_management.ride_lifecycle.notify_user_event')
	@patch('services.ride_management.ride_lifecycle.notify_ride_group')
	def test_ownership_transfer_events(self, mock_notify, mock_user_event):
		join_ride(self.bob, self.ride.id)

		with self.captureOnCommitCallbacks(execute=True):
			leave_ride(self.alice, self.ride.id)

		event_types = [call[0][1] for call in mock_notify.call_args_list]
		self.assertEqual(event_types, ['user_left', 'owner_changed'])
		mock_user_event.assert_called_once()
		self.assertEqual(mock_user_event.call_args[0][:2], (self.bob.id, 'ride_ownership_transferred'))

	def test_notification_failure_keeps_join(self):
		with patch('realtime.notifications.get_channel_layer', side_effect=RuntimeError('layer down')):
			with self.assertLogs('realtime.notifications', level='ERROR'):
				with self.captureOnCommitCallbacks(execute=True):
					join_ride(self.bob, self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 2)
		self.assertEqual(self.ride.status, 'active')


class LastSeatRaceTests(TransactionTestCase):
	def setUp(self):
		self.ride = make_ride(make_user('alice'))
		for name in ('bob', 'carol', 'dave', 'erin'):
			join_ride(make_user(name), self.ride.id)
		self.contenders = [make_user('frank'), make_user('grace')]

	def test_concurrent_joins_for_last_seat(self):
		barrier = threading.Barrier(len(self.contenders))
		outcomes = []

		def contend(user):
			try:
				barrier.wait()
				join_ride(user, self.ride.id)
				outcomes.append('joined')
			except RideFullError:
				outcomes.append('full')
			finally:
				connection.close()

		threads = [threading.Thread(target=contend, args=(user,)) for user in self.contenders]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(sorted(outcomes), ['full', 'joined'])
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.current_seat_count, 6)
		self.assertEqual(self.ride.status, 'full')
		self.assertEqual(RideParticipant.objects.filter(ride=self.ride).count(), 6)


class RideChatTests(TestCase):
	def setUp(self):
		self.alice = make_user('alice')
		self.bob = make_user('bob')
		self.outsider = make_user('outsider')
		self.ride = make_ride(self.alice)
		join_ride(self.bob, self.ride.id)

	@patch('services.ride_management.chat.notify_ride_group')
	def test_member_message_is_stored_and_broadcast(self, mock_notify):
		with self.captureOnCommitCallbacks(execute=True):
			message = post_message(self.bob, self.ride.id, '  Meet at the gate  ')

		self.assertEqual(message.message, 'Meet at the gate')
		mock_notify.assert_called_once()
		self.assertEqual(mock_notify.call_args[0][:2], (self.ride.id, 'new_message'))
		self.assertEqual(mock_notify.call_args[1]['extra']['data']['user_id'], self.bob.id)

	def test_outsider_cannot_post(self):
		with self.assertRaises(RideForbiddenError):
			post_message(self.outsider, self.ride.id, 'hello')

	def test_empty_and_oversized_messages_rejected(self):
		with self.assertRaises(RideValidationError):
			post_message(self.alice, self.ride.id, '   ')
		with self.assertRaises(RideValidationError):
			post_message(self.alice, self.ride.id, 'x' * 1001)
		self.assertFalse(ChatMessage.objects.exists())


class ExpirationSweeperTests(TestCase):
	# 06:00 UTC is 11:30 campus time on 2025-01-10
	NOW = datetime(2025, 1, 10, 6, 0, tzinfo=dt_timezone.utc)

	def setUp(self):
		self.alice = make_user('alice')
		self.bob = make_user('bob')

	def test_expired_ride_with_riders_is_completed(self):
		ride = make_ride(self.alice, start=time(9, 0), end=time(10, 0))
		join_ride(self.bob, ride.id)

		result = sweep_expired_rides(now=self.NOW)

		ride.refresh_from_db()
		self.assertEqual(result.completed, [ride.id])
		self.assertEqual(ride.status, 'completed')
		self.assertIsNotNone(ride.completed_at)

	def test_expired_empty_ride_is_deleted_with_messages(self):
		ride = make_ride(self.alice, ride_date=date(2025, 1, 9))
		post_message(self.alice, ride.id, 'anyone?')

		result = sweep_expired_rides(now=self.NOW)

		self.assertEqual(result.deleted, [ride.id])
		self.assertFalse(Ride.objects.filter(id=ride.id).exists())
		self.assertFalse(ChatMessage.objects.exists())

	def test_future_and_closed_rides_untouched(self):
		later_today = make_ride(self.alice, start=time(12, 0), end=time(13, 0))
		cancelled = make_ride(self.bob, ride_date=date(2025, 1, 1))
		Ride.objects.filter(id=cancelled.id).update(status='cancelled')

		result = sweep_expired_rides(now=self.NOW)

		self.assertEqual(result.total, 0)
		self.assertTrue(Ride.objects.filter(id=later_today.id, status='waiting').exists())
		self.assertTrue(Ride.objects.filter(id=cancelled.id, status='cancelled').exists())

	def test_expiry_uses_campus_clock(self):
		# 20:00 UTC on the 9th is already 01:30 on the 10th on campus
		late_evening = datetime(2025, 1, 9, 20, 0, tzinfo=dt_timezone.utc)
		ride = make_ride(self.alice, ride_date=date(2025, 1, 9), start=time(22, 0), end=time(23, 0))

		self.assertEqual(find_expired_ride_ids(now=late_evening), [ride.id])

	def test_full_rides_are_swept(self):
		ride = make_ride(self.alice)
		join_ride(self.bob, ride.id)
		Ride.objects.filter(id=ride.id).update(status='full')

		self.assertEqual(retire_ride(ride.id, now=self.NOW), 'completed')

	def test_one_failure_does_not_stop_sweep(self):
		broken = make_ride(self.alice, ride_date=date(2025, 1, 8))
		healthy = make_ride(self.bob, ride_date=date(2025, 1, 9))
		real_retire = sweeper.retire_ride

		def flaky_retire(ride_id, now=None):
			if ride_id == broken.id:
				raise DatabaseError('row lock timeout')
			return real_retire(ride_id, now)

		with patch('services.expiration.sweeper.retire_ride', side_effect=flaky_retire):
			with self.assertLogs('services.expiration.sweeper', level='ERROR'):
				result = sweep_expired_rides(now=self.NOW)

		self.assertEqual(result.failed, [broken.id])
		self.assertEqual(result.deleted, [healthy.id])
		self.assertTrue(Ride.objects.filter(id=broken.id).exists())

	def test_retire_skips_ride_no_longer_expired(self):
		ride = make_ride(self.alice, start=time(12, 0), end=time(13, 0))

		self.assertIsNone(retire_ride(ride.id, now=self.NOW))
