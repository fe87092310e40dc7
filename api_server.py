#!/usr/bin/env python3
"""
Headshot Studio API Server
Upload a photo, tune local adjustments, optionally hand the frame to a
remote transform provider, download the PNG. Sessions live in memory only.
"""

import os
import logging
from io import BytesIO
from typing import Any, Dict, Tuple
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)

from headshot_studio.errors import (
    DecodeError,
    HeadshotError,
    InvalidDimensions,
    InvalidSessionState,
    InvalidSettings,
    TransformError,
)
from headshot_studio.models.session import HeadshotSession
from headshot_studio.services.image_service import ImageService
from headshot_studio.services.session_service import SessionService

app = Flask(__name__)
CORS(app)  # Enable CORS for the browser front-end

# Configuration
ALLOWED_EXTENSIONS = set(os.getenv("ALLOWED_EXTENSIONS", "png,jpg,jpeg,webp,bmp,gif").split(","))
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
DOWNLOAD_NAME = os.getenv("DOWNLOAD_NAME", "professional-headshot.png")

# multipart overhead on top of the image itself
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_BYTES * 2
app.config['TRANSFORM_PROVIDER'] = None

# Initialize services
image_service = ImageService()
session_service = SessionService(image_service=image_service)

logger = logging.getLogger(__name__)

# Session storage, transient
sessions: Dict[str, HeadshotSession] = {}

_INT_SETTINGS = ("brightness", "contrast", "saturation")


class UnknownSession(KeyError):
    pass


class UploadTooLarge(Exception):
    pass


def get_session(session_id: str) -> HeadshotSession:
    if not session_id or session_id not in sessions:
        raise UnknownSession(session_id)
    return sessions[session_id]


def get_or_create_session(session_id: str = None, mode: str = None) -> HeadshotSession:
    """Get existing session or create a new, not yet registered one."""
    if session_id and session_id in sessions:
        return sessions[session_id]
    return session_service.new_session(mode)


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def parse_settings(payload: Any) -> Dict[str, Any]:
    """Slider payload → kwargs; integral floats are accepted for int sliders."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidSettings("settings must be an object")
    parsed = dict(payload)
    for key in _INT_SETTINGS:
        value = parsed.get(key)
        if isinstance(value, float) and value.is_integer():
            parsed[key] = int(value)
    return parsed


def read_upload() -> Tuple[Any, str]:
    """Return (image source, mode) from a multipart or JSON upload."""
    if 'image' in request.files:
        file = request.files['image']
        if file.filename == '':
            raise DecodeError('No file selected')
        filename = secure_filename(file.filename)
        if not allowed_file(filename):
            raise DecodeError('Please select a valid image file (JPEG, PNG, etc.)')
        data = file.read()
        mode = request.form.get('mode')
    else:
        body = request.get_json(silent=True) or {}
        data = body.get('image')
        if not data:
            raise DecodeError('No image provided')
        if not isinstance(data, str) or not data.startswith('data:image/'):
            raise DecodeError('Invalid image format')
        data = image_service.image_repository.decode_data_url(data)
        mode = body.get('mode')

    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadTooLarge()
    return data, mode


def session_payload(session: HeadshotSession, include_preview: bool = True) -> Dict[str, Any]:
    payload = session.summary()
    if include_preview and session.enhanced is not None:
        payload['preview'] = image_service.to_data_url(session.enhanced)
    if include_preview and session.result is not None:
        payload['result'] = image_service.to_data_url(session.result)
    return payload


def error_response(err: Exception):
    """Map core errors onto HTTP status codes."""
    if isinstance(err, UnknownSession):
        return jsonify({'success': False, 'error': 'Invalid session'}), 404
    if isinstance(err, (UploadTooLarge, RequestEntityTooLarge)):
        return jsonify({'success': False,
                        'error': f'Image file is too large. Please use an image smaller than {MAX_UPLOAD_SIZE_MB}MB.'}), 413
    if isinstance(err, (DecodeError, InvalidDimensions, InvalidSettings)):
        return jsonify({'success': False, 'error': str(err)}), 400
    if isinstance(err, InvalidSessionState):
        return jsonify({'success': False, 'error': str(err)}), 409
    if isinstance(err, TransformError):
        if err.status == 400:
            return jsonify({'success': False, 'error': str(err)}), 400
        if err.status == 429:
            return jsonify({'success': False, 'error': 'Rate limit exceeded. Please try again later.'}), 429
        return jsonify({'success': False, 'error': 'Failed to transform image. Please try again.'}), 502
    logger.error(f"Unexpected error: {err}")
    return jsonify({'success': False, 'error': 'An unexpected error occurred. Please try again.'}), 500


@app.route('/api/upload', methods=['POST'])
def upload():
    """Decode, crop and store a new photo in a (new or existing) session."""
    try:
        data, mode = read_upload()
        session_id = request.form.get('session_id') or (request.get_json(silent=True) or {}).get('session_id')
        session = get_or_create_session(session_id, mode)
        session_service.load_image(session, data, mode)
        sessions[session.session_id] = session

        return jsonify({'success': True, **session_payload(session)})
    except (HeadshotError, UploadTooLarge, RequestEntityTooLarge, UnknownSession) as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Upload error")
        return error_response(e)


@app.route('/api/adjust', methods=['POST'])
def adjust():
    """Apply slider changes; always re-rendered from the original frame."""
    try:
        body = request.get_json(silent=True) or {}
        session = get_session(body.get('session_id'))
        changes = parse_settings(body.get('settings'))
        session_service.update_settings(session, **changes)
        return jsonify({'success': True, **session_payload(session)})
    except (HeadshotError, UnknownSession) as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Adjustment error")
        return error_response(e)


@app.route('/api/reset', methods=['POST'])
def reset():
    try:
        body = request.get_json(silent=True) or {}
        session = get_session(body.get('session_id'))
        session_service.reset(session)
        return jsonify({'success': True, **session_payload(session)})
    except (HeadshotError, UnknownSession) as e:
        return error_response(e)


@app.route('/api/transform', methods=['POST'])
def transform():
    """Send the current frame to the configured transform provider."""
    try:
        body = request.get_json(silent=True) or {}
        session = get_session(body.get('session_id'))
        provider = app.config.get('TRANSFORM_PROVIDER')
        if provider is None:
            return jsonify({'success': False, 'error': 'No transform provider configured'}), 503

        logger.info(f"Transforming session {session.session_id} with style {body.get('style')}")
        session_service.submit(session, provider, body.get('style'))
        return jsonify({'success': True, **session_payload(session)})
    except (HeadshotError, UnknownSession) as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Transform error")
        return error_response(e)


@app.route('/api/session/<session_id>', methods=['GET'])
def session_info(session_id):
    try:
        return jsonify({'success': True, **session_payload(get_session(session_id), include_preview=False)})
    except UnknownSession as e:
        return error_response(e)


@app.route('/api/image/<session_id>/<which>', methods=['GET'])
def serve_image(session_id, which):
    """Serve original / enhanced / result frame as PNG."""
    try:
        png = session_service.export_png(get_session(session_id), which)
        as_attachment = request.args.get('download', '0') in ('1', 'true', 'yes')
        return send_file(BytesIO(png), mimetype='image/png',
                         as_attachment=as_attachment, download_name=DOWNLOAD_NAME)
    except UnknownSession as e:
        return error_response(e)
    except InvalidSessionState as e:
        return jsonify({'success': False, 'error': str(e)}), 404


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'message': 'Headshot Studio API is running',
        'active_sessions': len(sessions),
        'transform_provider': app.config.get('TRANSFORM_PROVIDER') is not None,
    })


@app.route('/api/clear-session', methods=['POST'])
def clear_session():
    """Clear a session and free memory."""
    session_id = (request.get_json(silent=True) or {}).get('session_id')
    if session_id and session_id in sessions:
        sessions.pop(session_id).clear()
        return jsonify({'success': True, 'message': 'Session cleared'})
    return jsonify({'success': False, 'message': 'Session not found'}), 404


@app.errorhandler(413)
def too_large(e):
    """Handle file too large error."""
    return jsonify({'success': False,
                    'error': f'Image file is too large. Please use an image smaller than {MAX_UPLOAD_SIZE_MB}MB.'}), 413


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


def main():
    host = os.getenv("API_HOST", "127.0.0.1")
    port = int(os.getenv("API_PORT", "5000"))
    debug = os.getenv("FLASK_DEBUG", "0") in ("1", "true", "True")
    logger.info(f"Starting Headshot Studio API on {host}:{port} (max upload {MAX_UPLOAD_SIZE_MB}MB)")
    # one request at a time: renders share per-session scratch buffers
    app.run(host=host, port=port, debug=debug, threaded=False)


if __name__ == '__main__':
    main()
