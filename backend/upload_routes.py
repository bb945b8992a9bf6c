"""Media upload endpoints backed by blob storage"""
import logging

from flask import Blueprint, g, jsonify, request
from flask_login import login_required

import config
from auth_utils import current_user_id, reporter_or_admin
from schemas import BatchUploadRequest, ConfirmUploadRequest, ReadUrlRequest, UploadRequest, validate_body
from storage import StorageError, get_storage, is_allowed_type, make_blob_name

logger = logging.getLogger(__name__)

upload_bp = Blueprint('upload', __name__, url_prefix='/api/upload')


def _invalid_type():
    return jsonify({'error': 'Invalid file type', 'allowed_types': config.ALLOWED_UPLOAD_TYPES}), 400


@upload_bp.route('/sas-token', methods=['POST'])
@reporter_or_admin
@validate_body(UploadRequest)
def sas_token():
    body = g.body
    if not is_allowed_type(body.content_type):
        return _invalid_type()
    try:
        return jsonify(get_storage().get_upload_url(body.file_name, body.content_type))
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status


@upload_bp.route('/sas-tokens', methods=['POST'])
@reporter_or_admin
@validate_body(BatchUploadRequest)
def sas_tokens():
    files = g.body.files
    if len(files) > config.MAX_BATCH_UPLOADS:
        return jsonify({'error': f"Maximum {config.MAX_BATCH_UPLOADS} files per batch"}), 400
    rejected = [f.file_name for f in files if not is_allowed_type(f.content_type)]
    if rejected:
        return jsonify({
            'error': f"Invalid file type for {', '.join(rejected)}",
            'allowed_types': config.ALLOWED_UPLOAD_TYPES,
        }), 400

    storage = get_storage()
    try:
        uploads = []
        for item in files:
            data = storage.get_upload_url(item.file_name, item.content_type)
            data['original_file_name'] = item.file_name
            uploads.append(data)
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status
    return jsonify({'uploads': uploads})


@upload_bp.route('/read-url', methods=['POST'])
@login_required
@validate_body(ReadUrlRequest)
def read_url():
    body = g.body
    try:
        url = get_storage().get_read_url(body.blob_name, body.expiry_minutes)
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status
    return jsonify({'read_url': url, 'expires_in': body.expiry_minutes * 60})


@upload_bp.route('/file', methods=['POST'])
@reporter_or_admin
def upload_file():
    """Proxied upload for clients that cannot PUT to a SAS URL (multipart field `file`)"""
    file = request.files.get('file')
    if file is None or not file.filename:
        return jsonify({'error': 'No file provided'}), 400
    content_type = file.mimetype
    if not is_allowed_type(content_type):
        return _invalid_type()

    blob_name = make_blob_name(file.filename, content_type)
    try:
        url = get_storage().upload_bytes(blob_name, file.read(), content_type)
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status

    logger.info(f"📤 User {current_user_id()} uploaded {blob_name}")
    return jsonify({'message': 'File uploaded', 'url': url, 'blob_name': blob_name}), 201


@upload_bp.route('/<path:blob_name>', methods=['DELETE'])
@reporter_or_admin
def delete_file(blob_name):
    try:
        deleted = get_storage().delete_blob(blob_name)
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status
    if not deleted:
        return jsonify({'error': 'File not found or could not be deleted'}), 404
    logger.info(f"🗑️  User {current_user_id()} deleted {blob_name}")
    return jsonify({'message': 'File deleted successfully'})


@upload_bp.route('/confirm', methods=['POST'])
@reporter_or_admin
@validate_body(ConfirmUploadRequest)
def confirm_upload():
    body = g.body
    url = body.blob_url or get_storage().blob_url(body.blob_name)
    kind = 'video' if body.blob_name.startswith('videos/') else 'image'
    return jsonify({'message': 'Upload confirmed', 'url': url, 'blob_name': body.blob_name, 'type': kind})
