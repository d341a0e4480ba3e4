from datetime import date, time
from unittest.mock import MagicMock, patch

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase, TransactionTestCase
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User
from rides.models import ChatMessage
from services.ride_management import create_ride, join_ride
from .consumers import RideChatConsumer
from .middleware import get_user_for_token
from .notifications import notify_ride_group, notify_user_event, ride_group_name


class NotificationTests(TestCase):
	def test_ride_group_receives_event(self):
		layer = get_channel_layer()
		channel = async_to_sync(layer.new_channel)()
		async_to_sync(layer.group_add)(ride_group_name(7), channel)

		sent = notify_ride_group(7, 'user_joined', 'Bob joined the ride', {'user_id': 2, 'seat_count': 2})

		self.assertTrue(sent)
		event = async_to_sync(layer.receive)(channel)
		self.assertEqual(event['type'], 'user_joined')
		self.assertEqual(event['ride_id'], 7)
		self.assertEqual(event['seat_count'], 2)
		self.assertEqual(event['message'], 'Bob joined the ride')

	def test_user_event_goes_to_personal_group(self):
		layer = MagicMock()
		with patch('realtime.notifications.get_channel_layer', return_value=layer):
			with patch('realtime.notifications.async_to_sync', side_effect=lambda fn: fn):
				self.assertTrue(notify_user_event(5, 'ride_ownership_transferred', {'ride_id': 9}))

		layer.group_send.assert_called_once_with(
			'user_5', {'type': 'ride_ownership_transferred', 'ride_id': 9}
		)

	def test_missing_layer_is_reported_not_raised(self):
		with patch('realtime.notifications.get_channel_layer', return_value=None):
			with self.assertLogs('realtime.notifications', level='WARNING'):
				self.assertFalse(notify_ride_group(1, 'ride_cancelled'))

	def test_send_failure_is_logged_not_raised(self):
		layer = MagicMock()
		layer.group_send.side_effect = RuntimeError('redis unavailable')
		with patch('realtime.notifications.get_channel_layer', return_value=layer):
			with patch('realtime.notifications.async_to_sync', side_effect=lambda fn: fn):
				with self.assertLogs('realtime.notifications', level='ERROR'):
					self.assertFalse(notify_ride_group(1, 'ride_deleted'))


class TokenAuthTests(TransactionTestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='alice', password='pass1234', email='alice@campus.test')

	async def test_valid_token_resolves_user(self):
		token = str(AccessToken.for_user(self.user))

		user = await get_user_for_token(token)

		self.assertEqual(user.id, self.user.id)

	async def test_bad_token_is_anonymous(self):
		user = await get_user_for_token('not-a-token')

		self.assertIsInstance(user, AnonymousUser)


class RideChatConsumerTests(TransactionTestCase):
	def setUp(self):
		self.alice = User.objects.create_user(username='alice', password='pass1234', email='alice@campus.test')
		self.bob = User.objects.create_user(username='bob', password='pass1234', email='bob@campus.test')
		self.outsider = User.objects.create_user(username='eve', password='pass1234', email='eve@campus.test')
		self.ride = create_ride(self.alice, 'Bus Stand', date(2025, 1, 10), time(9, 0), time(10, 0)).ride
		join_ride(self.bob, self.ride.id)

	async def _connect(self, user):
		communicator = WebsocketCommunicator(RideChatConsumer.as_asgi(), '/ws/ride/')
		communicator.scope['user'] = user
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		return communicator

	async def test_anonymous_connection_rejected(self):
		communicator = WebsocketCommunicator(RideChatConsumer.as_asgi(), '/ws/ride/')
		communicator.scope['user'] = AnonymousUser()

		connected, _ = await communicator.connect()

		self.assertFalse(connected)

	async def test_member_joins_room_and_receives_events(self):
		communicator = await self._connect(self.alice)

		await communicator.send_json_to({'type': 'join_ride', 'ride_id': self.ride.id})
		response = await communicator.receive_json_from()
		self.assertEqual(response, {'type': 'ride_joined', 'ride_id': self.ride.id})

		await get_channel_layer().group_send(ride_group_name(self.ride.id), {
			'type': 'user_left',
			'ride_id': self.ride.id,
			'user_id': self.bob.id,
			'seat_count': 1,
			'status': 'active',
			'message': 'bob left the ride',
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event['type'], 'user_left')
		self.assertEqual(event['seat_count'], 1)

		await communicator.disconnect()

	async def test_outsider_cannot_join_room(self):
		communicator = await self._connect(self.outsider)

		await communicator.send_json_to({'type': 'join_ride', 'ride_id': self.ride.id})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		await communicator.disconnect()

	async def test_send_message_is_stored(self):
		communicator = await self._connect(self.bob)

		await communicator.send_json_to({'type': 'send_message', 'ride_id': self.ride.id, 'message': 'At the gate'})
		self.assertTrue(await communicator.receive_nothing(timeout=1))

		stored = await database_sync_to_async(
			ChatMessage.objects.filter(ride_id=self.ride.id, user=self.bob, message='At the gate').exists
		)()
		self.assertTrue(stored)
		await communicator.disconnect()

	async def test_unknown_and_untyped_messages_rejected(self):
		communicator = await self._connect(self.bob)

		await communicator.send_json_to({'ride_id': self.ride.id})
		self.assertEqual((await communicator.receive_json_from())['type'], 'error')

		await communicator.send_json_to({'type': 'teleport'})
		self.assertEqual((await communicator.receive_json_from())['type'], 'error')

		# Typing outside a joined room is dropped
		await communicator.send_json_to({'type': 'typing', 'ride_id': self.ride.id, 'is_typing': True})
		self.assertTrue(await communicator.receive_nothing())
		await communicator.disconnect()

	async def test_ride_id_sent_as_string_is_normalized(self):
		communicator = await self._connect(self.alice)

		await communicator.send_json_to({'type': 'join_ride', 'ride_id': str(self.ride.id)})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'ride_joined', 'ride_id': self.ride.id})

		await communicator.send_json_to({'type': 'leave_ride', 'ride_id': self.ride.id})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'ride_left', 'ride_id': self.ride.id})

		await communicator.send_json_to({'type': 'join_ride', 'ride_id': 'next'})
		self.assertEqual((await communicator.receive_json_from())['type'], 'error')
		await communicator.disconnect()

	async def test_leaving_ride_elsewhere_drops_room(self):
		communicator = await self._connect(self.bob)
		await communicator.send_json_to({'type': 'join_ride', 'ride_id': self.ride.id})
		self.assertEqual((await communicator.receive_json_from())['type'], 'ride_joined')

		layer = get_channel_layer()
		await layer.group_send(ride_group_name(self.ride.id), {
			'type': 'user_left',
			'ride_id': self.ride.id,
			'user_id': self.bob.id,
			'seat_count': 0,
			'status': 'cancelled',
			'message': 'bob left the ride',
		})
		event = await communicator.receive_json_from()
		self.assertEqual((event['type'], event['user_id']), ('user_left', self.bob.id))

		await layer.group_send(ride_group_name(self.ride.id), {
			'type': 'ride_completed',
			'ride_id': self.ride.id,
			'completed_by': self.alice.id,
			'message': 'Ride completed',
		})
		self.assertTrue(await communicator.receive_nothing(timeout=0.5))
		await communicator.disconnect()
