from decimal import Decimal

import pytest
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from escrow.services import EscrowService
from projects.models import Project

PASSWORD = 'Str0ng-Passw0rd!'


@pytest.fixture(autouse=True)
def offline_collaborators(settings):
    """Keep payouts and CRM sync inside the process."""
    settings.PAYOUT_PROVIDER = 'manual'
    settings.HUBSPOT_ACCESS_TOKEN = ''


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def make_member(django_user_model):
    def _make(email, member_type='client', **extra):
        return django_user_model.objects.create_user(
            email=email,
            password=PASSWORD,
            member_type=member_type,
            first_name=extra.pop('first_name', email.split('@')[0].title()),
            last_name=extra.pop('last_name', 'Member'),
            **extra,
        )
    return _make


@pytest.fixture
def client_member(make_member):
    return make_member('client@example.com', 'client', company_name='Bay Builders LLC')


@pytest.fixture
def contractor_member(make_member):
    return make_member('contractor@example.com', 'contractor', company_name='Oakland Framing Co')


@pytest.fixture
def outsider(make_member):
    return make_member('outsider@example.com', 'client')


@pytest.fixture
def staff_member(make_member):
    return make_member('staff@example.com', 'client', is_staff=True)


@pytest.fixture
def mediator(make_member, settings):
    member = make_member('mediator@example.com', 'contractor')
    group, _ = Group.objects.get_or_create(name=settings.MEDIATOR_GROUP_NAME)
    member.groups.add(group)
    return member


@pytest.fixture
def project(client_member, contractor_member):
    return Project.objects.create(
        client=client_member,
        contractor=contractor_member,
        title='Fruitvale Community Center',
        location='Oakland, CA',
        estimated_value=Decimal('100000.00'),
        status='active',
    )


@pytest.fixture
def escrow(project):
    result = EscrowService().create_project_escrow(
        project=project,
        total_project_value=Decimal('100000.00'),
    )
    assert result['status'] == 'success', result
    return result['escrow']


@pytest.fixture
def fund(escrow):
    def _fund(amount, payment_method='ACH'):
        result = EscrowService().fund_escrow(escrow=escrow, amount=Decimal(amount), payment_method=payment_method)
        assert result['status'] == 'success', result
        escrow.refresh_from_db()
        return escrow
    return _fund


@pytest.fixture
def funded_escrow(fund):
    return fund('100000.00')
