"""
Invoice services: numbering, totals and the atomic invoice + line items write.
"""

import logging
import re
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from apps.core.mutation_guard import Operation
from apps.core.query_composer import raise_rejection, run
from apps.core.tenant_scope import EntityType

from .models import Invoice

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PATTERN = re.compile(r'^INV-(?P<year>\d{4})-(?P<sequence>\d+)$')


def next_invoice_number(organization_id, year=None):
    """
    Next ``INV-YYYY-NNNN`` for an organization: one more than the highest
    sequence that organization already used in ``year``.
    """
    year = year or timezone.localdate().year
    prefix = f"INV-{year}-"
    used = Invoice.objects.filter(
        organization_id=organization_id,
        invoice_number__startswith=prefix,
    ).values_list('invoice_number', flat=True)

    highest = 0
    for number in used:
        match = INVOICE_NUMBER_PATTERN.match(number)
        if match:
            highest = max(highest, int(match.group('sequence')))
    return f"{prefix}{highest + 1:04d}"


def recalculate_total(invoice):
    total = sum((item.total for item in invoice.line_items.all()), Decimal('0'))
    invoice.total_amount = total.quantize(Decimal('0.01'))
    invoice.save(update_fields=['total_amount', 'updated_at'])
    return invoice


def _write_line_items(composer, invoice, line_items):
    for position, item in enumerate(line_items):
        payload = dict(item)
        payload.setdefault('position', position)
        payload['invoice'] = invoice
        run(composer.compose(EntityType.INVOICE_LINE_ITEM, Operation.CREATE, payload=payload))


def create_invoice(composer, payload, line_items=(), organization_id=None):
    """
    Create an invoice with its line items in one transaction.

    The invoice goes through the composer like any other write; each line
    item is then composed against the new invoice, so its tenant is always
    the invoice's. A missing ``invoice_number`` is generated.
    """
    try:
        with transaction.atomic():
            query = raise_rejection(composer.compose(
                EntityType.INVOICE,
                Operation.CREATE,
                organization_id=organization_id,
                payload=payload,
            ))
            if not query.values.get('invoice_number'):
                query.values['invoice_number'] = next_invoice_number(query.organization_id)
            invoice = query.execute()
            _write_line_items(composer, invoice, line_items)
            recalculate_total(invoice)
    except IntegrityError:
        logger.warning("Invoice number clash for organization %s", organization_id)
        raise ValidationError({'invoice_number': ["This invoice number is already in use."]})

    logger.info(
        "Invoice %s created in organization %s with %d line items",
        invoice.invoice_number, invoice.organization_id, len(line_items),
    )
    return invoice


def update_invoice(composer, invoice, payload, line_items=None):
    """Update an invoice; a given ``line_items`` list replaces the existing lines."""
    with transaction.atomic():
        invoice = run(composer.compose(
            EntityType.INVOICE, Operation.UPDATE, pk=invoice.pk, payload=payload,
        ))
        if line_items is not None:
            invoice.line_items.all().delete()
            _write_line_items(composer, invoice, line_items)
        recalculate_total(invoice)
    return invoice
