from flask import Blueprint, request

content_bp = Blueprint('content_api', __name__)


@content_bp.route('/callable/generateMeanings', methods=['POST'])
def generate_meanings():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import content_api_service

    return content_api_service.generate_meanings(get_service_context(), request)


@content_bp.route('/callable/generateResponse', methods=['POST'])
def generate_response():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import content_api_service

    return content_api_service.generate_response(get_service_context(), request)
