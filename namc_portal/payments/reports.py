"""
Cash-flow projections and payment reports for members.

Report figures are computed over the escrows where the member is the
client or the contractor. Money amounts are returned as strings.
"""
import logging
from decimal import Decimal

from django.db.models import Q

from disputes.models import PaymentDispute
from disputes.serializers import PaymentDisputeSerializer
from escrow.models import ProjectEscrow
from escrow.serializers import EscrowPaymentSerializer, ProjectEscrowSerializer
from .models import CashFlowProjection
from .serializers import CashFlowProjectionSerializer, PaymentMilestoneSerializer, TaskPaymentSerializer
from .services import quantize

logger = logging.getLogger(__name__)

ACTIVE_ESCROW_STATUSES = ('active', 'funded')


def _money(value):
    return str(quantize(value or 0))


def _date_filtered(queryset, start_date=None, end_date=None):
    if start_date:
        queryset = queryset.filter(created_at__date__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__date__lte=end_date)
    return queryset


def member_escrows(member, start_date=None, end_date=None):
    queryset = ProjectEscrow.objects.filter(
        Q(project__client=member) | Q(project__contractor=member)
    ).select_related('project', 'project__client', 'project__contractor')
    return _date_filtered(queryset, start_date, end_date)


def confidence_score(risk_factors):
    """Base confidence of 0.8, minus 0.1 per identified risk, kept within [0.1, 1.0]."""
    score = Decimal('0.8') - Decimal('0.1') * len(risk_factors or [])
    return max(Decimal('0.1'), min(Decimal('1.0'), score))


class CashFlowService:

    def create_cash_flow_projection(self, *, escrow, member, projection_date, projected_inflow,
                                    projected_outflow, risk_factors=None, recommendations=None):
        risk_factors = risk_factors or []
        projection = CashFlowProjection.objects.create(
            escrow=escrow,
            member=member,
            projection_date=projection_date,
            projected_inflow=projected_inflow,
            projected_outflow=projected_outflow,
            net_cash_flow=projected_inflow - projected_outflow,
            confidence_score=confidence_score(risk_factors),
            risk_factors=risk_factors,
            recommendations=recommendations or [],
        )
        logger.info(f"Cash flow projection {projection.id} created for escrow {escrow.id} by {member.email}")
        return projection

    def get_cash_flow_dashboard(self, member):
        escrows = list(member_escrows(member).prefetch_related('task_payments', 'milestones'))

        pending_payments = 0
        for escrow in escrows:
            pending_payments += sum(1 for task in escrow.task_payments.all() if task.status == 'approved')
            pending_payments += sum(1 for milestone in escrow.milestones.all() if milestone.status == 'verified')

        recent = (
            CashFlowProjection.objects.filter(escrow__in=[escrow.id for escrow in escrows])
            .order_by('-projection_date', '-id')[:5]
        )

        return {
            'total_escrow_balance': _money(sum((e.escrow_balance for e in escrows), Decimal('0'))),
            'total_project_value': _money(sum((e.total_project_value for e in escrows), Decimal('0'))),
            'total_paid': _money(sum((e.total_paid for e in escrows), Decimal('0'))),
            'pending_payments': pending_payments,
            'active_escrows': sum(1 for e in escrows if e.status in ACTIVE_ESCROW_STATUSES),
            'recent_projections': CashFlowProjectionSerializer(recent, many=True).data,
        }


def summary_report(member, start_date=None, end_date=None):
    escrows = list(member_escrows(member, start_date, end_date).prefetch_related('disputes'))
    total_value = sum((e.total_project_value for e in escrows), Decimal('0'))
    return {
        'total_projects': len(escrows),
        'total_value': _money(total_value),
        'total_escrow_balance': _money(sum((e.escrow_balance for e in escrows), Decimal('0'))),
        'total_paid': _money(sum((e.total_paid for e in escrows), Decimal('0'))),
        'active_escrows': sum(1 for e in escrows if e.status in ACTIVE_ESCROW_STATUSES),
        'completed_escrows': sum(1 for e in escrows if e.status in ('completed', 'closed')),
        'total_disputes': sum(len(e.disputes.all()) for e in escrows),
        'average_project_value': _money(total_value / len(escrows)) if escrows else _money(0),
    }


def detailed_report(member, start_date=None, end_date=None):
    escrows = member_escrows(member, start_date, end_date).prefetch_related(
        'payments__recipient', 'task_payments__contractor', 'milestones__contractor',
    )

    rows = []
    for escrow in escrows:
        tasks = list(escrow.task_payments.all())
        milestones = list(escrow.milestones.all())
        row = ProjectEscrowSerializer(escrow).data
        row['payment_history'] = EscrowPaymentSerializer(escrow.payments.all(), many=True).data
        row['task_summary'] = {
            'total': len(tasks),
            'completed': sum(1 for t in tasks if t.status == 'paid'),
            'pending': sum(1 for t in tasks if t.status == 'pending'),
            'total_amount': _money(sum((t.payment_amount for t in tasks), Decimal('0'))),
        }
        row['milestone_summary'] = {
            'total': len(milestones),
            'completed': sum(1 for m in milestones if m.status == 'paid'),
            'pending': sum(1 for m in milestones if m.status == 'pending'),
            'total_amount': _money(sum((m.payment_amount for m in milestones), Decimal('0'))),
        }
        row['task_payments'] = TaskPaymentSerializer(tasks, many=True).data
        row['milestones'] = PaymentMilestoneSerializer(milestones, many=True).data
        rows.append(row)
    return {'escrows': rows}


def projection_accuracy(projections):
    """
    Mean of ``1 - |projected_net - actual_net| / |projected_net|`` (floored at 0)
    over projections that have actuals recorded.
    """
    completed = [p for p in projections if p.actual_inflow is not None and p.actual_outflow is not None]
    if not completed:
        return {'accuracy': 0.0, 'sample_size': 0}

    scores = []
    for p in completed:
        projected_net = p.projected_inflow - p.projected_outflow
        actual_net = p.actual_inflow - p.actual_outflow
        if projected_net == 0 and actual_net == 0:
            scores.append(1.0)
        elif projected_net == 0:
            scores.append(0.0)
        else:
            scores.append(max(0.0, 1 - float(abs(projected_net - actual_net) / abs(projected_net))))

    return {'accuracy': round(sum(scores) / len(scores), 4), 'sample_size': len(completed)}


def projection_trend(projections):
    if len(projections) < 2:
        return {'trend': 'insufficient_data'}

    ordered = sorted(projections, key=lambda p: (p.projection_date, p.id))
    first, last = ordered[0].net_cash_flow, ordered[-1].net_cash_flow
    change = last - first
    if change > 0:
        trend = 'improving'
    elif change < 0:
        trend = 'declining'
    else:
        trend = 'stable'
    return {
        'trend': trend,
        'change_amount': _money(change),
        'change_percentage': round(float(change / abs(first) * 100), 2) if first != 0 else 0.0,
    }


def projections_report(member, start_date=None, end_date=None):
    projections = list(_date_filtered(
        CashFlowProjection.objects.filter(member=member).select_related('escrow'),
        start_date, end_date,
    ).order_by('-projection_date', '-id'))
    return {
        'projections': CashFlowProjectionSerializer(projections, many=True).data,
        'accuracy': projection_accuracy(projections),
        'trends': projection_trend(projections),
    }


def average_resolution_days(disputes):
    resolved = [d for d in disputes if d.status == 'resolved' and d.resolution_date]
    if not resolved:
        return 0.0
    days = [(d.resolution_date - d.created_at).total_seconds() / 86400 for d in resolved]
    return round(sum(days) / len(days), 2)


def disputes_report(member, start_date=None, end_date=None):
    disputes = list(_date_filtered(
        PaymentDispute.objects.filter(Q(submitted_by=member) | Q(respondent=member))
        .select_related('submitted_by', 'respondent', 'mediator', 'escrow__project'),
        start_date, end_date,
    ))
    return {
        'disputes': PaymentDisputeSerializer(disputes, many=True).data,
        'summary': {
            'total': len(disputes),
            'resolved': sum(1 for d in disputes if d.status == 'resolved'),
            'pending': sum(1 for d in disputes if d.status != 'resolved'),
            'total_amount': _money(sum((d.dispute_amount for d in disputes), Decimal('0'))),
            'average_resolution_time': average_resolution_days(disputes),
        },
    }


REPORT_BUILDERS = {
    'summary': summary_report,
    'detailed': detailed_report,
    'projections': projections_report,
    'disputes': disputes_report,
}
