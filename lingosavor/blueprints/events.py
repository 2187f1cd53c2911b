from flask import Blueprint, request

events_bp = Blueprint('events_api', __name__)


@events_bp.route('/events/room-deleted', methods=['POST'])
def room_deleted():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import events_api_service

    return events_api_service.room_deleted(get_service_context(), request)


@events_bp.route('/events/subscription-written', methods=['POST'])
def subscription_written():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import events_api_service

    return events_api_service.subscription_written(get_service_context(), request)


@events_bp.route('/events/notification-created', methods=['POST'])
def notification_created():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import events_api_service

    return events_api_service.notification_created(get_service_context(), request)


@events_bp.route('/events/apple-server-notification', methods=['POST'])
def apple_server_notification():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import events_api_service

    return events_api_service.apple_server_notification(get_service_context(), request)
