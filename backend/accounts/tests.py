from datetime import date, time

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework_simplejwt.views import TokenRefreshView

from services.ride_management import create_ride, join_ride
from .models import User
from .views import LoginView, MeView, RegisterView


class AccountApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def test_register_issues_tokens_and_student_role(self):
		request = self.factory.post('/api/auth/register/', {
			'username': 'asha',
			'email': 'asha@campus.test',
			'password': 'password123',
			'name': 'Asha Rao',
		}, format='json')
		response = RegisterView.as_view()(request)

		self.assertEqual(response.status_code, 201)
		self.assertIn('access', response.data['tokens'])
		self.assertEqual(User.objects.get(username='asha').role, 'user')

	def test_register_rejects_duplicate_email(self):
		User.objects.create_user(username='asha', password='password123', email='asha@campus.test')

		request = self.factory.post('/api/auth/register/', {
			'username': 'asha2',
			'email': 'ASHA@campus.test',
			'password': 'password123',
		}, format='json')
		response = RegisterView.as_view()(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('email', response.data)

	def test_login(self):
		User.objects.create_user(username='asha', password='password123', email='asha@campus.test')

		good = LoginView.as_view()(self.factory.post(
			'/api/auth/login/', {'username': 'asha', 'password': 'password123'}, format='json'
		))
		bad = LoginView.as_view()(self.factory.post(
			'/api/auth/login/', {'username': 'asha', 'password': 'wrong'}, format='json'
		))

		self.assertEqual(good.status_code, 200)
		self.assertIn('refresh', good.data['tokens'])
		self.assertEqual(bad.status_code, 400)

		refreshed = TokenRefreshView.as_view()(self.factory.post(
			'/api/auth/token/refresh/', {'refresh': good.data['tokens']['refresh']}, format='json'
		))
		self.assertEqual(refreshed.status_code, 200)
		self.assertIn('access', refreshed.data)

	def test_me_includes_history_and_stats(self):
		alice = User.objects.create_user(username='alice', password='pass1234', email='alice@campus.test')
		bob = User.objects.create_user(username='bob', password='pass1234', email='bob@campus.test')
		ride = create_ride(alice, 'GV Mall', date(2025, 1, 10), time(17, 0), time(18, 0)).ride
		join_ride(bob, ride.id)

		request = self.factory.get('/api/auth/me/')
		force_authenticate(request, user=bob)
		response = MeView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['stats']['joined_rides'], 1)
		self.assertEqual(response.data['stats']['created_rides'], 0)
		self.assertEqual(response.data['ride_history'][0]['participation_type'], 'joined')
