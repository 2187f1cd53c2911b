from flask import Blueprint, request

documents_bp = Blueprint('documents_api', __name__)


@documents_bp.route('/callable/transcribeAudio', methods=['POST'])
def transcribe_audio():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.transcribe_audio(get_service_context(), request)


@documents_bp.route('/callable/transcribeVideo', methods=['POST'])
def transcribe_video():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.transcribe_video(get_service_context(), request)


@documents_bp.route('/callable/transcribeImages', methods=['POST'])
def transcribe_images():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.transcribe_images(get_service_context(), request)


@documents_bp.route('/callable/transcribeDocument', methods=['POST'])
def transcribe_document():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.transcribe_document(get_service_context(), request)


@documents_bp.route('/callable/textToSpeech', methods=['POST'])
def text_to_speech():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.text_to_speech(get_service_context(), request)


@documents_bp.route('/callable/savorDocument', methods=['POST'])
def savor_document():
    from lingosavor.extensions import get_service_context
    from lingosavor.services import document_api_service

    return document_api_service.savor_document(get_service_context(), request)
