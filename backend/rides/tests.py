from datetime import date, time
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate
from unittest.mock import patch

from accounts.models import User
from services.ride_management import create_ride, join_ride
from .models import ChatMessage, Ride, RideParticipant
from .views import (
	AdminStatsView,
	PopularDestinationsView,
	RideCompleteView,
	RideDetailView,
	RideJoinView,
	RideLeaveView,
	RideListCreateView,
	RideMessagesView,
	RideRequestView,
)


class RideApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.alice = User.objects.create_user(
			username='alice',
			password='pass1234',
			email='alice@campus.test',
			name='Alice'
		)
		self.bob = User.objects.create_user(
			username='bob',
			password='pass1234',
			email='bob@campus.test',
			name='Bob'
		)
		self.carol = User.objects.create_user(
			username='carol',
			password='pass1234',
			email='carol@campus.test'
		)
		self.admin = User.objects.create_user(
			username='warden',
			password='admin1234',
			email='warden@campus.test',
			role='admin'
		)

		self.ride = create_ride(
			creator=self.alice,
			destination='Railway Station',
			date=date(2025, 1, 10),
			time_window_start=time(9, 0),
			time_window_end=time(10, 0),
		).ride

	def _call(self, view_class, method, path, user, data=None, **kwargs):
		if method == 'get':
			request = self.factory.get(path, data)
		else:
			request = getattr(self.factory, method)(path, data, format='json')
		force_authenticate(request, user=user)
		return view_class.as_view()(request, **kwargs)

	def _request_body(self, **overrides):
		body = {
			'destination': 'Bus Stand',
			'date': '2025-01-10',
			'time_window_start': '09:30',
			'time_window_end': '10:30',
		}
		body.update(overrides)
		return body

	def test_ride_request_returns_matches(self):
		response = self._call(RideRequestView, 'post', '/api/rides/request/', self.bob, self._request_body())

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['matched'])
		self.assertEqual([ride['id'] for ride in response.data['matches']], [self.ride.id])

	def test_ride_request_creates_when_nothing_matches(self):
		response = self._call(
			RideRequestView, 'post', '/api/rides/request/', self.bob,
			self._request_body(destination='Connplex Cinemas')
		)

		self.assertEqual(response.status_code, 201)
		self.assertFalse(response.data['matched'])
		self.assertEqual(response.data['ride']['status'], 'waiting')
		self.assertEqual(response.data['ride']['current_seat_count'], 0)

	def test_ride_request_rejects_reversed_window(self):
		response = self._call(
			RideRequestView, 'post', '/api/rides/request/', self.bob,
			self._request_body(time_window_start='11:00', time_window_end='10:00')
		)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(Ride.objects.count(), 1)

	def test_join_and_leave_endpoints(self):
		response = self._call(RideJoinView, 'post', '/join/', self.bob, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['current_seat_count'], 2)
		self.assertEqual(response.data['ride']['seats_available'], 4)

		response = self._call(RideJoinView, 'post', '/join/', self.bob, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)

		response = self._call(RideJoinView, 'post', '/join/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)

		response = self._call(RideLeaveView, 'post', '/leave/', self.carol, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 404)

		response = self._call(RideLeaveView, 'post', '/leave/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['creator']['id'], self.bob.id)
		self.assertEqual(response.data['ride']['current_seat_count'], 1)

	def test_join_missing_ride_is_not_found(self):
		response = self._call(RideJoinView, 'post', '/join/', self.bob, ride_id=self.ride.id + 50)

		self.assertEqual(response.status_code, 404)

	def test_seventh_join_conflicts(self):
		for index in range(5):
			rider = User.objects.create_user(
				username='rider%d' % index,
				password='pass1234',
				email='rider%d@campus.test' % index
			)
			response = self._call(RideJoinView, 'post', '/join/', rider, ride_id=self.ride.id)
			self.assertEqual(response.status_code, 200)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'full')

		response = self._call(RideJoinView, 'post', '/join/', self.bob, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)

	def test_complete_twice_conflicts(self):
		join_ride(self.bob, self.ride.id)

		response = self._call(RideCompleteView, 'post', '/complete/', self.carol, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 403)

		response = self._call(RideCompleteView, 'post', '/complete/', self.bob, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'completed')

		response = self._call(RideCompleteView, 'post', '/complete/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)

	def test_delete_ride(self):
		join_ride(self.bob, self.ride.id)

		response = self._call(RideDetailView, 'delete', '/', self.bob, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 403)

		response = self._call(RideDetailView, 'delete', '/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)

		RideParticipant.objects.filter(ride=self.ride, user=self.bob).delete()
		response = self._call(RideDetailView, 'delete', '/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertFalse(Ride.objects.filter(id=self.ride.id).exists())

	def test_ride_detail_includes_messages(self):
		join_ride(self.bob, self.ride.id)
		ChatMessage.objects.create(ride=self.ride, user=self.bob, message='On my way')

		response = self._call(RideDetailView, 'get', '/', self.carol, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data['ride']['participants']), 2)
		self.assertEqual(response.data['ride']['messages'][0]['message'], 'On my way')

	def test_list_filters_by_status(self):
		waiting = self._call(RideListCreateView, 'get', '/api/rides/', self.bob, {'status': 'waiting'})
		active = self._call(RideListCreateView, 'get', '/api/rides/', self.bob, {'status': 'active'})

		self.assertEqual(waiting.data['count'], 1)
		self.assertEqual(active.data['count'], 0)

		join_ride(self.bob, self.ride.id)
		active = self._call(RideListCreateView, 'get', '/api/rides/', self.bob, {'destination': 'railway'})
		self.assertEqual(active.data['count'], 1)

	def test_default_listing_shows_joinable_rides(self):
		fresh = create_ride(self.bob, 'GV Mall', date(2025, 1, 11), time(9, 0), time(10, 0)).ride
		done = create_ride(self.carol, 'Bus Stand', date(2025, 1, 11), time(9, 0), time(10, 0)).ride
		Ride.objects.filter(id=done.id).update(status='completed')
		join_ride(self.bob, self.ride.id)

		response = self._call(RideListCreateView, 'get', '/api/rides/', self.carol)

		self.assertEqual(response.status_code, 200)
		listed = {ride['id']: ride['status'] for ride in response.data['rides']}
		self.assertEqual(listed, {self.ride.id: 'active', fresh.id: 'waiting'})

		everything = self._call(RideListCreateView, 'get', '/api/rides/', self.carol, {'status': 'all'})
		self.assertEqual(everything.data['count'], 3)

	def test_create_endpoint_skips_matching(self):
		response = self._call(RideListCreateView, 'post', '/api/rides/', self.bob, self._request_body())

		self.assertEqual(response.status_code, 201)
		self.assertEqual(Ride.objects.count(), 2)

	@patch('services.ride_management.chat.notify_ride_group')
	def test_messages_members_only(self, mock_notify):
		join_ride(self.bob, self.ride.id)

		with self.captureOnCommitCallbacks(execute=True):
			response = self._call(
				RideMessagesView, 'post', '/messages/', self.bob, {'message': 'Meet at gate 2'}, ride_id=self.ride.id
			)
		self.assertEqual(response.status_code, 201)
		mock_notify.assert_called_once()

		response = self._call(RideMessagesView, 'get', '/messages/', self.alice, ride_id=self.ride.id)
		self.assertEqual(response.data['count'], 1)

		response = self._call(RideMessagesView, 'get', '/messages/', self.carol, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 403)

	def test_popular_destinations(self):
		create_ride(self.bob, 'Railway Station', date(2025, 1, 11), time(9, 0), time(10, 0))
		create_ride(self.bob, 'GV Mall', date(2025, 1, 11), time(9, 0), time(10, 0))

		response = self._call(PopularDestinationsView, 'get', '/', self.carol)

		self.assertEqual(response.data['destinations'][0], {'destination': 'Railway Station', 'count': 2})

	def test_admin_stats_requires_admin_role(self):
		response = self._call(AdminStatsView, 'get', '/', self.bob)
		self.assertEqual(response.status_code, 403)

		response = self._call(AdminStatsView, 'get', '/', self.admin)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['total_users'], 3)
		self.assertEqual(response.data['total_rides'], 1)
		self.assertEqual(len(response.data['rides_per_day']), 7)


class SweepCommandTests(TestCase):
	def setUp(self):
		self.alice = User.objects.create_user(username='alice', password='pass1234', email='alice@campus.test')
		self.bob = User.objects.create_user(username='bob', password='pass1234', email='bob@campus.test')

		self.shared = create_ride(self.alice, 'Bus Stand', date(2020, 3, 1), time(8, 0), time(9, 0)).ride
		join_ride(self.bob, self.shared.id)
		self.empty = create_ride(self.bob, 'GV Mall', date(2020, 3, 1), time(8, 0), time(9, 0)).ride

	def test_dry_run_changes_nothing(self):
		out = StringIO()
		call_command('sweep_expired_rides', dry_run=True, stdout=out)

		self.assertIn('2 expired ride(s)', out.getvalue())
		self.assertEqual(Ride.objects.count(), 2)

	def test_sweep_completes_and_deletes(self):
		out = StringIO()
		call_command('sweep_expired_rides', stdout=out)

		self.shared.refresh_from_db()
		self.assertEqual(self.shared.status, 'completed')
		self.assertFalse(Ride.objects.filter(id=self.empty.id).exists())
		self.assertIn('Completed 1 ride(s); deleted 1 empty ride(s).', out.getvalue())

	@patch('rides.tasks.close_old_connections')
	def test_celery_task_reports_ids(self, mock_close):
		from .tasks import sweep_expired_rides_task

		result = sweep_expired_rides_task()

		self.assertEqual(result, {'completed': [self.shared.id], 'deleted': [self.empty.id], 'failed': []})
		mock_close.assert_called_once()
