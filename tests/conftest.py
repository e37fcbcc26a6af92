# ===============================================================================
# PYTEST CONFIGURATION FOR THE PROMOTIONS ENGINE
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/promotions/ holds app tests, one module per area
- tests/factories/ holds model factory helpers

Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.test')

    # Configure Django
    django.setup()

# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import uuid  # noqa: E402

import pytest  # noqa: E402
from django.contrib.auth import get_user_model  # noqa: E402

User = get_user_model()


@pytest.fixture
def user():
    """Create test user"""
    return User.objects.create_user(username='member-desk', email='desk@gym.test', password='testpass123')


@pytest.fixture
def admin_user():
    """Create admin user for tests"""
    return User.objects.create_user(
        username='admin', email='admin@gym.test', password='testpass123', is_staff=True, is_superuser=True
    )


@pytest.fixture
def member_id():
    """Fresh member identifier"""
    return uuid.uuid4()
