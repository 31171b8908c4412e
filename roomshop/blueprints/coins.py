"""Coins blueprint - balance, rewards, purchases (JSON API)."""
from flask import Blueprint, jsonify, g, request
from roomshop.database import get_session
from roomshop.services import coin_service
from roomshop.middleware import require_login
from roomshop.utils.request_parsing import get_payload, get_int, get_str

coins_bp = Blueprint('coins', __name__, url_prefix='/api/coins')


@coins_bp.route('/balance', methods=['GET'])
@require_login
def balance():
    stats = coin_service.get_coin_stats(get_session(), g.user)
    return jsonify({'status': 'success', **stats})


@coins_bp.route('/history', methods=['GET'])
@require_login
def history():
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 20, type=int)
    result = coin_service.get_transaction_history(get_session(), g.user, page, per_page)
    return jsonify({'status': 'success', **result})


@coins_bp.route('/rewards', methods=['GET'])
@require_login
def rewards():
    return jsonify({
        'status': 'success',
        'rewards': coin_service.get_available_rewards(get_session(), g.user),
    })


def _reward_response(entry):
    return jsonify({
        'status': 'success',
        'coins_awarded': entry.amount,
        'new_balance': g.user.coins,
        'transaction': entry.to_dict(),
    })


@coins_bp.route('/rewards/daily-login', methods=['POST'])
@require_login
def claim_daily_login():
    return _reward_response(coin_service.claim_daily_login(get_session(), g.user))


@coins_bp.route('/rewards/registration', methods=['POST'])
@require_login
def claim_registration():
    return _reward_response(coin_service.claim_registration_reward(get_session(), g.user))


@coins_bp.route('/rewards/activity', methods=['POST'])
@require_login
def claim_activity():
    return _reward_response(coin_service.claim_activity_reward(get_session(), g.user))


@coins_bp.route('/activity', methods=['POST'])
@require_login
def record_activity():
    minutes = get_int(get_payload(), 'minutes', min_value=1, max_value=coin_service.MAX_ACTIVITY_MINUTES_PER_CALL)
    result = coin_service.record_activity(get_session(), g.user, minutes)
    return jsonify({'status': 'success', **result})


@coins_bp.route('/purchase', methods=['POST'])
@require_login
def purchase():
    amount_usd = get_int(
        get_payload(), 'amount_usd',
        min_value=coin_service.MIN_PURCHASE_USD, max_value=coin_service.MAX_PURCHASE_USD
    )
    result = coin_service.purchase_coins(get_session(), g.user, amount_usd)
    return jsonify({'status': 'success', **result})


@coins_bp.route('/spend', methods=['POST'])
@require_login
def spend():
    payload = get_payload()
    amount = get_int(payload, 'amount', min_value=1)
    action = get_str(payload, 'action', max_length=100)
    notes = get_str(payload, 'notes', required=False, max_length=500)
    entry = coin_service.spend_coins(get_session(), g.user, amount, action, notes)
    return jsonify({'status': 'success', 'new_balance': g.user.coins, 'transaction': entry.to_dict()})
