"""Template lookup and rendering.

Templates use Jinja2 restricted to its logic-less subset: ``{{ value }}``
substitution, ``{% if %}`` truthy conditionals and ``{% for %}`` loops over a
named sequence. Missing keys render as the empty string at any depth.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, Sequence, Tuple

import jinja2

from .errors import TemplateError, TemplateNotFound, TemplateSyntaxError
from .models import NotificationRequest, QueuedItem, TemplatePair, normalize_context

LOGGER = logging.getLogger(__name__)

BUILTIN_TEMPLATES: Dict[str, TemplatePair] = {
    "issue_created": TemplatePair(
        subject="New issue: {{ issue.title }}",
        body="""\
A new issue has been created:

**{{ issue.title }}**

{{ issue.description }}

Priority: {{ issue.priority }}
Status: {{ issue.status }}

View issue: {{ issue.url }}
""",
    ),
    "issue_assigned": TemplatePair(
        subject="You've been assigned to: {{ issue.title }}",
        body="""\
You have been assigned to work on:

**{{ issue.title }}**

{{ issue.description }}

Due date: {{ issue.due_date }}

View issue: {{ issue.url }}
""",
    ),
    "issue_transitioned": TemplatePair(
        subject="Issue updated: {{ issue.title }}",
        body="""\
Issue status changed from {{ transition.from }} to {{ transition.to }}:

**{{ issue.title }}**

{% if comment %}
Comment: {{ comment }}
{% endif %}

View issue: {{ issue.url }}
""",
    ),
    "sla_breach": TemplatePair(
        subject="\U0001F6A8 SLA BREACH: {{ issue.title }}",
        body="""\
**URGENT: SLA BREACH**

Issue: {{ issue.title }}
SLA: {{ sla.name }}
Breach time: {{ breach.timestamp }}

Immediate action required!

View issue: {{ issue.url }}
""",
    ),
}

DIGEST_TEMPLATE = """\
You have {{ count }} updates:

{% for email in emails %}
---
{{ email.rendered_body }}

{% endfor %}

---
To change your email preferences, visit your settings.
"""


class ContextEnvironment(jinja2.Environment):
    """Plain-text environment where mapping keys win over attribute lookups.

    ``{{ issue.items }}`` resolves the ``items`` key of the context rather than
    the ``dict.items`` method.
    """

    def getattr(self, obj, attribute):
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except KeyError:
                return self.undefined(obj=obj, name=attribute)
        return super().getattr(obj, attribute)


def create_environment() -> jinja2.Environment:
    return ContextEnvironment(
        autoescape=False,
        undefined=jinja2.ChainableUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def _compile(env: jinja2.Environment, source: str) -> jinja2.Template:
    try:
        return env.from_string(source)
    except jinja2.TemplateSyntaxError as exc:
        raise TemplateSyntaxError(exc.message or str(exc), exc.lineno) from exc


def validate_template(text: str, env: Optional[jinja2.Environment] = None) -> None:
    """Parse ``text`` without rendering it; raise ``TemplateSyntaxError`` if malformed."""
    env = env or create_environment()
    try:
        env.parse(text)
    except jinja2.TemplateSyntaxError as exc:
        raise TemplateSyntaxError(exc.message or str(exc), exc.lineno) from exc


class TemplateStore(ABC):
    @abstractmethod
    def get(self, template_id: str) -> TemplatePair:
        """Return the template pair or raise ``TemplateNotFound``."""

    @abstractmethod
    def names(self) -> Sequence[str]:
        ...


class InMemoryTemplateStore(TemplateStore):
    def __init__(self, templates: Optional[Mapping[str, TemplatePair]] = None):
        self._templates = dict(BUILTIN_TEMPLATES if templates is None else templates)

    def get(self, template_id: str) -> TemplatePair:
        try:
            return self._templates[template_id]
        except KeyError:
            raise TemplateNotFound(template_id) from None

    def names(self) -> Sequence[str]:
        return sorted(self._templates)


class TemplateRenderer:
    """Resolves request content into a ``(subject, body)`` pair."""

    def __init__(self, store: Optional[TemplateStore] = None, env: Optional[jinja2.Environment] = None):
        self.store = store or InMemoryTemplateStore()
        self.env = env or create_environment()
        self._compiled: Dict[str, Tuple[jinja2.Template, jinja2.Template]] = {}
        self._lock = threading.Lock()
        self._digest = _compile(self.env, DIGEST_TEMPLATE)

    def _templates_for(self, template_id: str) -> Tuple[jinja2.Template, jinja2.Template]:
        with self._lock:
            cached = self._compiled.get(template_id)
        if cached is not None:
            return cached
        pair = self.store.get(template_id)
        compiled = (_compile(self.env, pair.subject), _compile(self.env, pair.body))
        with self._lock:
            self._compiled[template_id] = compiled
        return compiled

    def render_template(self, template_id: str, context: Mapping) -> Tuple[str, str]:
        subject_tpl, body_tpl = self._templates_for(str(template_id))
        data = normalize_context(context or {})
        try:
            return subject_tpl.render(data), body_tpl.render(data)
        except jinja2.TemplateError as exc:
            raise TemplateError(f"Failed to render template '{template_id}': {exc}") from exc

    def render(self, request: NotificationRequest) -> Tuple[str, str]:
        if request.template is not None:
            return self.render_template(request.template, request.context)
        return request.subject or "", request.body or ""

    def render_item(self, item: QueuedItem) -> str:
        if item.template is not None:
            _, body = self.render_template(item.template, item.context)
            return body
        return item.body or ""

    def render_digest(self, items: Sequence[QueuedItem]) -> str:
        rendered = [{"rendered_body": self.render_item(item)} for item in items]
        LOGGER.debug("Rendering digest with %d items", len(rendered))
        return self._digest.render(count=len(rendered), emails=rendered)


__all__ = [
    "BUILTIN_TEMPLATES",
    "DIGEST_TEMPLATE",
    "InMemoryTemplateStore",
    "TemplateRenderer",
    "TemplateStore",
    "create_environment",
    "validate_template",
]
