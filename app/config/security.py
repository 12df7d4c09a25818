# app/config/security.py
# Upload policy shared by document uploads and chat attachments

import os
from typing import Set

class SecurityConfig:
    """Security configuration for file uploads"""

    # File upload security settings
    FILE_UPLOAD = {
        'max_file_size': int(os.getenv('MAX_FILE_SIZE', 50 * 1024 * 1024)),  # 50MB
        'allowed_extensions': {
            # Documents
            '.pdf', '.doc', '.docx', '.txt', '.rtf', '.odt', '.md',
            # Images
            '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
            # Spreadsheets
            '.xls', '.xlsx', '.csv', '.ods',
            # Presentations
            '.ppt', '.pptx', '.odp',
            # Archives
            '.zip', '.rar', '.7z', '.tar', '.gz',
            # Media
            '.mp4', '.mov', '.mp3', '.wav'
        },
        'blocked_extensions': {
            '.exe', '.bat', '.cmd', '.com', '.scr', '.pif', '.vbs', '.js',
            '.jar', '.class', '.php', '.asp', '.aspx', '.jsp', '.py', '.pl',
            '.sh', '.ps1', '.dll', '.sys', '.drv', '.ocx', '.cpl', '.msi'
        },
    }

    # File storage
    STORAGE = {
        'upload_dir': os.getenv('UPLOAD_DIR', 'uploads'),
        'public_prefix': os.getenv('UPLOAD_URL_PREFIX', '/uploads'),
    }

    MIME_TYPES = {
        '.pdf': 'application/pdf',
        '.doc': 'application/msword',
        '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
        '.txt': 'text/plain',
        '.md': 'text/markdown',
        '.rtf': 'text/rtf',
        '.odt': 'application/vnd.oasis.opendocument.text',
        '.jpg': 'image/jpeg',
        '.jpeg': 'image/jpeg',
        '.png': 'image/png',
        '.gif': 'image/gif',
        '.bmp': 'image/bmp',
        '.svg': 'image/svg+xml',
        '.webp': 'image/webp',
        '.xls': 'application/vnd.ms-excel',
        '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        '.csv': 'text/csv',
        '.ods': 'application/vnd.oasis.opendocument.spreadsheet',
        '.ppt': 'application/vnd.ms-powerpoint',
        '.pptx': 'application/vnd.openxmlformats-officedocument.presentationml.presentation',
        '.odp': 'application/vnd.oasis.opendocument.presentation',
        '.zip': 'application/zip',
        '.rar': 'application/x-rar-compressed',
        '.7z': 'application/x-7z-compressed',
        '.tar': 'application/x-tar',
        '.gz': 'application/gzip',
        '.mp4': 'video/mp4',
        '.mov': 'video/quicktime',
        '.mp3': 'audio/mpeg',
        '.wav': 'audio/wav',
    }

    @classmethod
    def get_allowed_mime_types(cls) -> Set[str]:
        """Get allowed MIME types based on allowed extensions"""
        return {cls.MIME_TYPES[ext] for ext in cls.FILE_UPLOAD['allowed_extensions'] if ext in cls.MIME_TYPES}

    @classmethod
    def mime_type_for(cls, extension: str) -> str:
        return cls.MIME_TYPES.get(extension.lower(), 'application/octet-stream')

    @classmethod
    def is_extension_allowed(cls, extension: str) -> bool:
        """Check if file extension is allowed"""
        return extension.lower() in cls.FILE_UPLOAD['allowed_extensions']

    @classmethod
    def is_extension_blocked(cls, extension: str) -> bool:
        """Check if file extension is blocked"""
        return extension.lower() in cls.FILE_UPLOAD['blocked_extensions']
