"""
Project configuration checks.

These fail when the settings module drifts away from what the API relies on:
installed apps, authentication, error handling, payments and logging.
"""

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import connection, transaction
from django.test import TestCase, TransactionTestCase

from core.models import Category


class InstalledAppsTestCase(TestCase):

    def test_required_apps_installed(self):
        for app in [
            'rest_framework',
            'rest_framework_simplejwt',
            'rest_framework_simplejwt.token_blacklist',
            'corsheaders',
            'core.apps.CoreConfig',
        ]:
            with self.subTest(app=app):
                self.assertIn(app, settings.INSTALLED_APPS)

    def test_cors_middleware_precedes_common(self):
        middleware = settings.MIDDLEWARE

        self.assertLess(
            middleware.index('corsheaders.middleware.CorsMiddleware'),
            middleware.index('django.middleware.common.CommonMiddleware'),
        )


class AuthenticationSettingsTestCase(TestCase):

    def test_custom_user_model(self):
        self.assertEqual(settings.AUTH_USER_MODEL, 'core.User')
        self.assertEqual(get_user_model()._meta.label, 'core.User')

    def test_email_backend_first(self):
        self.assertEqual(settings.AUTHENTICATION_BACKENDS[0], 'core.backends.EmailBackend')

    def test_refresh_tokens_rotate_and_blacklist(self):
        self.assertTrue(settings.SIMPLE_JWT['ROTATE_REFRESH_TOKENS'])
        self.assertTrue(settings.SIMPLE_JWT['BLACKLIST_AFTER_ROTATION'])

    def test_jwt_is_default_authentication(self):
        self.assertIn(
            'rest_framework_simplejwt.authentication.JWTAuthentication',
            settings.REST_FRAMEWORK['DEFAULT_AUTHENTICATION_CLASSES'],
        )


class RestFrameworkSettingsTestCase(TestCase):

    def test_exception_handler(self):
        self.assertEqual(
            settings.REST_FRAMEWORK['EXCEPTION_HANDLER'],
            'core.exceptions.api_exception_handler',
        )

    def test_throttle_scopes(self):
        rates = settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']

        for scope in ['anon', 'user', 'login', 'refresh']:
            with self.subTest(scope=scope):
                self.assertIn(scope, rates)


class MarketplaceSettingsTestCase(TestCase):

    def test_defaults(self):
        self.assertEqual(settings.DEFAULT_CURRENCY, 'TRY')
        self.assertEqual(settings.PAYMENT_GATEWAY, 'mock')
        self.assertEqual(settings.PUSH_BACKEND, 'core.push.LoggingPushBackend')
        self.assertGreater(settings.NEED_DEFAULT_EXPIRY_DAYS, 0)
        self.assertGreater(settings.SEARCH_MAX_RESULTS, 0)
        self.assertGreater(settings.PROFILE_IMAGE_MAX_BYTES, 0)

    def test_core_logger_configured(self):
        loggers = settings.LOGGING['loggers']

        self.assertIn('core', loggers)
        self.assertIn('console', loggers['core']['handlers'])


class DatabaseOperationsTestCase(TransactionTestCase):

    def test_connection_is_usable(self):
        connection.ensure_connection()

        self.assertTrue(connection.is_usable())

    def test_transaction_rollback(self):
        try:
            with transaction.atomic():
                Category.objects.create(name='Rollback')
                raise RuntimeError('abort')
        except RuntimeError:
            pass

        self.assertFalse(Category.objects.filter(name='Rollback').exists())

    def test_unicode_round_trip(self):
        category = Category.objects.create(name='Evden Eve Taşıma 🚚', name_tr='Nakliyat')

        self.assertEqual(Category.objects.get(pk=category.pk).name, 'Evden Eve Taşıma 🚚')
