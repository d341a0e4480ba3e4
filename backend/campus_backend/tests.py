from unittest.mock import MagicMock, patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory

from .views import health_check


class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	@patch('campus_backend.views.redis.Redis.from_url', return_value=MagicMock())
	def test_all_services_healthy(self, mock_redis):
		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['database']['open_rides'], 0)
		self.assertEqual(response.data['services']['channels']['backend'], 'InMemoryChannelLayer')
		self.assertEqual(response.data['services']['celery']['status'], 'healthy')

	@patch('campus_backend.views.redis.Redis.from_url', side_effect=ConnectionError('refused'))
	def test_broker_outage_reports_unhealthy(self, mock_redis):
		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['redis']['status'].startswith('unhealthy'))
		self.assertEqual(response.data['services']['database']['status'], 'healthy')

	def test_sweep_task_registered_in_web_process(self):
		from .celery import app as celery_app
		from .views import SWEEP_TASK

		self.assertIn(SWEEP_TASK, celery_app.tasks)
