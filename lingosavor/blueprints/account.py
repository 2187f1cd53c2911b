from flask import Blueprint, request

account_bp = Blueprint('account_api', __name__)


@account_bp.route('/callable/addGems', methods=['POST'])
def add_gems():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import account_api_service

    return account_api_service.add_gems(get_service_context(), request)


@account_bp.route('/callable/createUserdata', methods=['POST'])
def create_user_data():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import account_api_service

    return account_api_service.create_user_data(get_service_context(), request)


@account_bp.route('/callable/saveFCMToken', methods=['POST'])
def save_fcm_token():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import account_api_service

    return account_api_service.save_fcm_token(get_service_context(), request)


@account_bp.route('/callable/deleteAccount', methods=['POST'])
def delete_account():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import account_api_service

    return account_api_service.delete_account(get_service_context(), request)
