"""
Fee Management API Routes
JSON endpoints for student fee details, payments, defaulters, reminders and collection targets
"""

import logging
from datetime import date
from functools import wraps
from flask import Blueprint, request, jsonify, g, current_app
from flask_login import current_user
from db_single import get_session, get_tenant_by_slug
from fee_helpers import (
    build_fee_options, get_student_fee_details, preview_payment_allocation,
    record_fee_payment, get_defaulter_list, get_fee_reminders, get_collection_targets
)

logger = logging.getLogger(__name__)


def _json_error(message, status):
    return jsonify({'success': False, 'message': message}), status


def _parse_date(value):
    """Parse an optional ISO date (YYYY-MM-DD)"""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _parse_amount(data):
    value = data.get('amount')
    if value is None:
        raise ValueError("amount is required")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"amount must be a number, got {value!r}")


def _is_truthy(value):
    return (value or '').lower() in ('1', 'true', 'yes')


def _receipt_to_dict(receipt):
    return {
        'id': receipt.id,
        'receipt_number': receipt.receipt_number,
        'fee_head_id': receipt.fee_head_id,
        'fee_term_id': receipt.fee_term_id,
        'amount_paid': float(receipt.amount_paid),
        'payment_mode': receipt.payment_mode.value,
        'payment_date': receipt.payment_date.isoformat(),
        'status': receipt.status.value
    }


def require_school_auth(f):
    """Resolve the school from the URL and require a user of that school"""
    @wraps(f)
    def decorated_function(tenant_slug, *args, **kwargs):
        session = get_session()
        try:
            tenant = get_tenant_by_slug(session, tenant_slug)
        finally:
            session.close()

        if not tenant:
            return _json_error(f"School '{tenant_slug}' not found", 404)
        g.current_tenant = tenant

        if not current_app.config.get('LOGIN_DISABLED'):
            if not current_user.is_authenticated:
                return _json_error('Authentication required', 401)

            # Check if user belongs to current tenant
            if current_user.tenant_id != tenant.id:
                return _json_error('Access denied - wrong school', 403)

        return f(tenant_slug, *args, **kwargs)

    return decorated_function


def _handle(action, operation):
    """Run a helper call, mapping failures onto JSON errors"""
    session = get_session()
    try:
        return operation(session)
    except ValueError as e:
        session.rollback()
        return _json_error(str(e), 400)
    except Exception as e:
        session.rollback()
        logger.error(f"Error {action}: {e}")
        return _json_error(f"Error {action}", 500)
    finally:
        session.close()


def create_fee_blueprint():
    """Create the fee API blueprint"""
    fee_bp = Blueprint('fees', __name__)

    # ===== STUDENT FEES =====

    @fee_bp.route('/<tenant_slug>/students/<int:student_id>/fees')
    @require_school_auth
    def student_fees(tenant_slug, student_id):
        """Calculated fee details for a student"""
        def operation(session):
            options = build_fee_options(
                as_of_date=_parse_date(request.args.get('as_of')),
                calculate_installments=_is_truthy(request.args.get('installments'))
            )
            details = get_student_fee_details(session, g.current_tenant.id, student_id, options)
            return jsonify({'success': True, **details})

        return _handle('loading student fees', operation)

    @fee_bp.route('/<tenant_slug>/students/<int:student_id>/allocation-preview', methods=['POST'])
    @require_school_auth
    def allocation_preview(tenant_slug, student_id):
        """Show how a payment would be allocated without recording it"""
        def operation(session):
            data = request.get_json(silent=True) or {}
            allocations = preview_payment_allocation(
                session, g.current_tenant.id, student_id,
                amount=_parse_amount(data),
                strategy=data.get('strategy'),
                as_of_date=_parse_date(data.get('as_of'))
            )
            return jsonify({'success': True, 'allocations': allocations})

        return _handle('previewing allocation', operation)

    @fee_bp.route('/<tenant_slug>/students/<int:student_id>/payments', methods=['POST'])
    @require_school_auth
    def record_payment(tenant_slug, student_id):
        """Record a payment, split across outstanding fees"""
        def operation(session):
            data = request.get_json(silent=True) or {}
            if not data.get('payment_mode'):
                raise ValueError("payment_mode is required")

            receipts = record_fee_payment(
                session, g.current_tenant.id, student_id,
                amount=_parse_amount(data),
                payment_mode=data['payment_mode'],
                strategy=data.get('strategy'),
                payment_date=_parse_date(data.get('payment_date')),
                payment_reference=data.get('payment_reference'),
                generated_by=current_user.id if current_user.is_authenticated else None,
                remarks=data.get('remarks')
            )
            return jsonify({
                'success': True,
                'message': f'Payment recorded as {len(receipts)} receipt(s)',
                'receipts': [_receipt_to_dict(r) for r in receipts]
            }), 201

        return _handle('recording payment', operation)

    # ===== REPORTS =====

    @fee_bp.route('/<tenant_slug>/defaulters')
    @require_school_auth
    def defaulters(tenant_slug):
        """Students with overdue outstanding fees"""
        def operation(session):
            rows = get_defaulter_list(
                session, g.current_tenant.id,
                as_of_date=_parse_date(request.args.get('as_of')),
                min_days_overdue=request.args.get('min_days', 0, type=int)
            )
            return jsonify({'success': True, 'count': len(rows), 'defaulters': rows})

        return _handle('loading defaulters', operation)

    @fee_bp.route('/<tenant_slug>/fee-reminders')
    @require_school_auth
    def fee_reminders(tenant_slug):
        """Reminders that are currently due"""
        def operation(session):
            reminders = get_fee_reminders(
                session, g.current_tenant.id,
                as_of_date=_parse_date(request.args.get('as_of'))
            )
            return jsonify({'success': True, 'count': len(reminders), 'reminders': reminders})

        return _handle('loading fee reminders', operation)

    @fee_bp.route('/<tenant_slug>/collection-targets')
    @require_school_auth
    def collection_targets(tenant_slug):
        """Collection progress for the current month"""
        def operation(session):
            targets = get_collection_targets(
                session, g.current_tenant.id,
                as_of_date=_parse_date(request.args.get('as_of'))
            )
            return jsonify({'success': True, **targets})

        return _handle('loading collection targets', operation)

    return fee_bp
