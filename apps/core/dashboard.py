"""
Dashboard aggregates. Every figure is read through the composer, so a
member only ever counts rows of their own organizations.
"""

import calendar
from decimal import Decimal

from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from .identity import as_organization_id
from .mutation_guard import Operation
from .tenant_scope import EntityType

STAT_ENTITIES = (
    ('clients_count', EntityType.CLIENT),
    ('projects_count', EntityType.PROJECT),
    ('tasks_count', EntityType.TASK),
    ('invoices_count', EntityType.INVOICE),
)

PAID = 'paid'


def _scoped(composer, entity_type, requested_organization_id, filters=None):
    return composer.compose(
        entity_type,
        Operation.READ_LIST,
        requested_organization_id=requested_organization_id,
        filters=filters,
    ).queryset


def organization_stats(composer, requested_organization_id=None):
    """Row counts and paid revenue for the actor's scope."""
    try:
        organization_id = as_organization_id(requested_organization_id) if requested_organization_id else None
    except (TypeError, ValueError):
        organization_id = None

    stats = {'organization_id': organization_id}
    for key, entity_type in STAT_ENTITIES:
        stats[key] = _scoped(composer, entity_type, requested_organization_id).count()

    paid = _scoped(composer, EntityType.INVOICE, requested_organization_id, {'status': PAID})
    stats['paid_revenue'] = paid.aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')
    return stats


def months_ago(day, months):
    index = day.year * 12 + day.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    return day.replace(year=year, month=month, day=min(day.day, calendar.monthrange(year, month)[1]))


def monthly_revenue(composer, requested_organization_id=None, months=12, today=None):
    """
    Paid invoice totals grouped by month of ``issue_date`` over the last
    ``months`` months, newest month first. Months without paid invoices are
    left out.
    """
    today = today or timezone.localdate()
    cutoff = months_ago(today, months)
    paid = _scoped(
        composer, EntityType.INVOICE, requested_organization_id,
        {'status': PAID, 'issue_date__gte': cutoff},
    )
    rows = (
        paid.annotate(month=TruncMonth('issue_date'))
        .values('month')
        .annotate(revenue=Sum('total_amount'), invoice_count=Count('id'))
        .order_by('-month')
    )
    return [
        {
            'month': row['month'].strftime('%Y-%m'),
            'revenue': row['revenue'] or Decimal('0.00'),
            'invoice_count': row['invoice_count'],
        }
        for row in rows
    ]
