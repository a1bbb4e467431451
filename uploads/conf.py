"""
Settings for the uploads app.

Values are read from the ``FILE_UPLOAD`` dict in Django settings on every
access, so tests can swap them with ``override_settings``.
"""
from django.conf import settings

DEFAULTS = {
    'APP_ROOT': None,
    'WEB_ROOT': None,
    'BASE_URL': None,
    'ALIASES': {},
}


def get_setting(name):
    user_settings = getattr(settings, 'FILE_UPLOAD', {})
    return user_settings.get(name, DEFAULTS[name])


def app_root():
    value = get_setting('APP_ROOT')
    if value is None:
        value = getattr(settings, 'BASE_DIR', '')
    return str(value)


def web_root():
    value = get_setting('WEB_ROOT')
    if value is None:
        value = settings.MEDIA_ROOT
    return str(value)


def base_url():
    value = get_setting('BASE_URL')
    if value is None:
        value = settings.MEDIA_URL or ''
    return str(value).rstrip('/')


def aliases():
    """Built-in ``@app``, ``@webroot`` and ``@web`` plus any configured extras."""
    result = {
        '@app': app_root(),
        '@webroot': web_root(),
        '@web': base_url(),
    }
    result.update(get_setting('ALIASES'))
    return result


def file_permissions():
    return settings.FILE_UPLOAD_PERMISSIONS


def directory_permissions():
    return settings.FILE_UPLOAD_DIRECTORY_PERMISSIONS
