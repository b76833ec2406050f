import logging
import os
import secrets
import time

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

# Pasta (dentro de UPLOAD_FOLDER) -> extensões e mimetypes aceitos
UPLOAD_KINDS = {
    'images': ({'png', 'jpg', 'jpeg'}, {'image/png', 'image/jpeg'}),
    'diplomas': ({'pdf'}, {'application/pdf'}),
    'materials': ({'pdf'}, {'application/pdf'}),
}

KIND_ERRORS = {
    'images': 'Apenas imagens PNG ou JPEG são permitidas!',
    'diplomas': 'Apenas arquivos PDF são permitidos!',
    'materials': 'Apenas arquivos PDF são permitidos!',
}


class UploadError(ValueError):
    """Arquivo ausente ou de tipo não permitido"""


def allowed_file(filename, kind):
    extensions, _ = UPLOAD_KINDS[kind]
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in extensions


def human_size(num_bytes):
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


def save_upload(file_storage, kind):
    """
    Salva o arquivo enviado em UPLOAD_FOLDER/<kind>/ com nome único.
    Retorna (caminho relativo, tamanho legível).
    """
    if file_storage is None or not file_storage.filename:
        raise UploadError('O upload de um arquivo é obrigatório.')

    _, mimetypes = UPLOAD_KINDS[kind]
    filename = secure_filename(file_storage.filename)
    if not allowed_file(filename, kind) or (file_storage.mimetype and file_storage.mimetype not in mimetypes):
        raise UploadError(KIND_ERRORS[kind])

    upload_dir = os.path.join(current_app.config['UPLOAD_FOLDER'], kind)
    os.makedirs(upload_dir, exist_ok=True)

    extension = os.path.splitext(filename)[1].lower()
    unique_name = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}{extension}"
    final_path = os.path.join(upload_dir, unique_name)
    file_storage.save(final_path)

    size = human_size(os.path.getsize(final_path))
    logger.info(f"Arquivo salvo em {kind}/{unique_name} ({size})")
    return f"{kind}/{unique_name}", size


def remove_upload(relative_path):
    """Remove um arquivo salvo; ignora caminhos fora do UPLOAD_FOLDER ou inexistentes"""
    if not relative_path:
        return False
    root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    full_path = os.path.abspath(os.path.join(root, relative_path))
    if not full_path.startswith(root + os.sep) or not os.path.isfile(full_path):
        return False
    os.remove(full_path)
    logger.info(f"Arquivo removido: {relative_path}")
    return True
