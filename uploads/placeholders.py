"""
Path and URL templates for uploaded files.

A template is a plain string with ``[[name]]`` tokens, optionally starting
with an ``@alias``::

    '[[web_root]]/uploads/[[id_path]]/[[basename]]'
    '@webroot/[[model]]/[[id]].[[extension]]'

Tokens are substituted in a single pass. Unknown tokens are left untouched.
"""
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .exceptions import InvalidAliasError

ID_PATH_LENGTH = 10

TOKEN_RE = re.compile(r'\[\[(\w+)\]\]')


class Placeholder(Enum):
    APP_ROOT = 'app_root'
    WEB_ROOT = 'web_root'
    BASE_URL = 'base_url'
    MODEL = 'model'
    ATTRIBUTE = 'attribute'
    ID = 'id'
    ID_PATH = 'id_path'
    PARENT_ID = 'parent_id'
    EXTENSION = 'extension'
    FILENAME = 'filename'
    BASENAME = 'basename'

    @property
    def token(self):
        return f'[[{self.value}]]'


@dataclass(frozen=True)
class ResolutionContext:
    """Everything a template can refer to, captured from one record."""
    app_root: str = ''
    web_root: str = ''
    base_url: str = ''
    model_name: str = ''
    attribute: str = ''
    pk: Any = None
    # None means no parent relation is configured.
    parent_id: Optional[str] = None
    # Stored file name or an uploaded file handle.
    value: Any = None
    aliases: Dict[str, str] = field(default_factory=dict)


def lcfirst(value):
    return value[:1].lower() + value[1:]


def make_id_path(pk):
    """
    Shard a primary key into nested directories, one character per level.

    The key is right-padded with zeros to ``ID_PATH_LENGTH`` characters, so
    ``42`` becomes ``4/2/0/0/0/0/0/0/0/0``. Longer keys are kept whole and
    produce a deeper path.
    """
    padded = ('' if pk is None else str(pk)).ljust(ID_PATH_LENGTH, '0')
    return '/'.join(padded)


def split_name(value):
    """
    Return ``(filename, extension)`` for a stored name or uploaded file.

    Only the last path component is considered and the extension is whatever
    follows the last dot, e.g. ``archive.tar.GZ`` -> ``('archive.tar', 'GZ')``.
    """
    name = getattr(value, 'name', value)
    if not name:
        return '', ''
    name = os.path.basename(str(name))
    if '.' not in name:
        return name, ''
    filename, _, extension = name.rpartition('.')
    return filename, extension


def join_name(filename, extension):
    if not extension:
        return filename
    return f'{filename}.{extension.lower()}'


def _extension(ctx):
    return split_name(ctx.value)[1].lower()


def _filename(ctx):
    return split_name(ctx.value)[0]


def _basename(ctx):
    return join_name(*split_name(ctx.value))


RESOLVERS: Dict[Placeholder, Callable[[ResolutionContext], Optional[str]]] = {
    Placeholder.APP_ROOT: lambda ctx: ctx.app_root,
    Placeholder.WEB_ROOT: lambda ctx: ctx.web_root,
    Placeholder.BASE_URL: lambda ctx: ctx.base_url,
    Placeholder.MODEL: lambda ctx: lcfirst(ctx.model_name),
    Placeholder.ATTRIBUTE: lambda ctx: lcfirst(ctx.attribute),
    Placeholder.ID: lambda ctx: '' if ctx.pk is None else str(ctx.pk),
    Placeholder.ID_PATH: lambda ctx: make_id_path(ctx.pk),
    Placeholder.PARENT_ID: lambda ctx: ctx.parent_id,
    Placeholder.EXTENSION: _extension,
    Placeholder.FILENAME: _filename,
    Placeholder.BASENAME: _basename,
}


def resolve_alias(template, aliases):
    """Expand a leading ``@alias`` segment, leaving other templates alone."""
    if not template.startswith('@'):
        return template
    alias, sep, rest = template.partition('/')
    if alias not in aliases:
        raise InvalidAliasError(alias)
    return f'{aliases[alias]}{sep}{rest}'


def resolve(template, context):
    """Substitute every known placeholder in ``template`` from ``context``."""
    template = resolve_alias(template, context.aliases)

    def substitute(match):
        try:
            placeholder = Placeholder(match.group(1))
        except ValueError:
            return match.group(0)
        value = RESOLVERS[placeholder](context)
        if value is None:
            return match.group(0)
        return value

    return TOKEN_RE.sub(substitute, template)
