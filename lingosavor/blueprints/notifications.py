from flask import Blueprint, request

notifications_bp = Blueprint('notifications_api', __name__)


@notifications_bp.route('/callable/sendNotificationManual', methods=['POST'])
def send_notification_manual():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import notification_api_service

    return notification_api_service.send_notification(get_service_context(), request)


@notifications_bp.route('/callable/sendBulkNotification', methods=['POST'])
def send_bulk_notification():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import notification_api_service

    return notification_api_service.send_bulk_notification(get_service_context(), request)
