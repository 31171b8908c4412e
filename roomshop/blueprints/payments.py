"""Deposits, subscriptions and notifications blueprint (JSON API)."""
from flask import Blueprint, jsonify, g, request
from roomshop.database import get_session
from roomshop.services import payment_service, subscription_service, notification_service
from roomshop.middleware import require_login, require_admin
from roomshop.utils.request_parsing import get_payload, get_int, get_str

payments_bp = Blueprint('payments', __name__, url_prefix='/api')


@payments_bp.route('/payments', methods=['POST'])
@require_login
def submit_deposit():
    payload = get_payload()
    payment = payment_service.submit_deposit(
        get_session(),
        g.user,
        get_int(payload, 'amount', min_value=payment_service.MIN_DEPOSIT_USD,
                max_value=payment_service.MAX_DEPOSIT_USD),
        get_str(payload, 'transaction_id', max_length=255),
        get_str(payload, 'phone_no', max_length=20),
    )
    return jsonify({
        'status': 'success',
        'message': 'Deposit submitted and awaiting review',
        'payment': payment.to_dict(),
    }), 201


@payments_bp.route('/payments', methods=['GET'])
@require_login
def my_payments():
    payments = payment_service.list_user_payments(get_session(), g.user)
    return jsonify({'status': 'success', 'payments': [p.to_dict() for p in payments]})


@payments_bp.route('/admin/payments/pending', methods=['GET'])
@require_login
@require_admin
def pending_payments():
    payments = payment_service.list_pending_payments(get_session())
    return jsonify({'status': 'success', 'payments': [p.to_dict() for p in payments]})


@payments_bp.route('/admin/payments/<int:payment_id>/approve', methods=['POST'])
@require_login
@require_admin
def approve_payment(payment_id):
    payment = payment_service.approve_payment(get_session(), payment_id, g.user)
    return jsonify({'status': 'success', 'payment': payment.to_dict()})


@payments_bp.route('/admin/payments/<int:payment_id>/reject', methods=['POST'])
@require_login
@require_admin
def reject_payment(payment_id):
    reason = get_str(get_payload(), 'reason', max_length=500)
    payment = payment_service.reject_payment(get_session(), payment_id, g.user, reason)
    return jsonify({'status': 'success', 'payment': payment.to_dict()})


@payments_bp.route('/subscriptions', methods=['GET'])
@require_login
def subscription_status():
    return jsonify({
        'status': 'success',
        **subscription_service.get_subscription_status(get_session(), g.user),
    })


@payments_bp.route('/subscriptions/upgrade', methods=['POST'])
@require_login
def upgrade_subscription():
    level = get_str(get_payload(), 'level', max_length=20)
    subscription = subscription_service.upgrade(get_session(), g.user, level)
    return jsonify({
        'status': 'success',
        'level': subscription.level,
        'end_date': subscription.end_date.isoformat(),
        'new_balance': str(g.user.balance),
    })


@payments_bp.route('/notifications', methods=['GET'])
@require_login
def notifications():
    db_session = get_session()
    unread_only = request.args.get('unread') == '1'
    items = notification_service.list_notifications(db_session, g.user, unread_only=unread_only)
    return jsonify({
        'status': 'success',
        'notifications': [n.to_dict() for n in items],
        'unread_count': notification_service.get_unread_count(db_session, g.user),
    })


@payments_bp.route('/notifications/<int:notification_id>/read', methods=['POST'])
@require_login
def mark_read(notification_id):
    notification = notification_service.mark_as_read(get_session(), g.user, notification_id)
    return jsonify({'status': 'success', 'notification': notification.to_dict()})


@payments_bp.route('/notifications/read-all', methods=['POST'])
@require_login
def mark_all_read():
    updated = notification_service.mark_all_as_read(get_session(), g.user)
    return jsonify({'status': 'success', 'updated': updated})
