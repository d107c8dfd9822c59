"""Template store.

Renders `{{name}}` placeholders by literal substitution. There is no nesting
and no conditional logic. A placeholder without a supplied value fails the
render (MissingVariableError) instead of rendering blank.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from courier.logging import get_module_logger
from courier.notifications.errors import (
    MissingVariableError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from courier.notifications.models import NotificationTemplate, utc_now
from courier.notifications.store import TemplateRepository

logger = get_module_logger()

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}\}")

EDITABLE_FIELDS = frozenset(
    {"name", "type", "subject", "content", "variables", "is_active"}
)


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


def extract_placeholders(text: str) -> List[str]:
    """Return placeholder names in order of first appearance."""
    seen: Dict[str, None] = {}
    for match in PLACEHOLDER_PATTERN.finditer(text or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)


def _substitute(text: str, values: Mapping[str, str]) -> str:
    return PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], text or "")


def render_template(
    template: NotificationTemplate, variables: Mapping[str, Any]
) -> RenderedMessage:
    """Render a template against a variable map.

    Non-string values are converted with str(). None counts as missing.

    Raises:
        MissingVariableError: A referenced placeholder has no value
    """
    placeholders = extract_placeholders(f"{template.subject}\n{template.content}")
    missing = [name for name in placeholders if variables.get(name) is None]
    if missing:
        raise MissingVariableError(missing, template=template.type)

    values = {name: str(variables[name]) for name in placeholders}
    return RenderedMessage(
        subject=_substitute(template.subject, values),
        body=_substitute(template.content, values),
    )


def _check_declared(template: NotificationTemplate) -> None:
    referenced = set(extract_placeholders(f"{template.subject}\n{template.content}"))
    undeclared = sorted(referenced - set(template.variables))
    if undeclared:
        raise ValidationError(
            f"template references undeclared variables: {', '.join(undeclared)}"
        )


class TemplateStore:
    """Create, edit and render notification templates.

    Args:
        repository: Template persistence backend
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        repository: TemplateRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.clock = clock

    def create_template(
        self,
        name: str,
        type: str,
        content: str,
        subject: str = "",
        variables: Optional[List[str]] = None,
        is_active: bool = True,
        is_system: bool = False,
    ) -> NotificationTemplate:
        """Create a template.

        When `variables` is omitted it is derived from the placeholders.

        Raises:
            ValidationError: Empty fields, or placeholders missing from `variables`
        """
        if variables is None:
            variables = extract_placeholders(f"{subject}\n{content}")
        now = self.clock()
        try:
            template = NotificationTemplate(
                name=name,
                type=type,
                subject=subject,
                content=content,
                variables=list(variables),
                is_active=is_active,
                is_system=is_system,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid template: {exc}") from exc
        _check_declared(template)

        saved = self.repository.save_template(template)
        logger.info(
            "notification_template_created",
            template_id=saved.id,
            template_type=saved.type,
        )
        return saved

    def update_template(self, template_id: str, **changes: Any) -> NotificationTemplate:
        """Edit a template.

        Raises:
            NotFoundError: Unknown template id
            ValidationError: Unknown field, empty value or undeclared placeholders
        """
        current = self.get_template(template_id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"fields cannot be edited: {', '.join(sorted(unknown))}")

        data = current.model_dump()
        data.update(changes)
        data["updated_at"] = self.clock()
        try:
            template = NotificationTemplate.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid template: {exc}") from exc
        _check_declared(template)

        saved = self.repository.save_template(template)
        logger.info(
            "notification_template_updated",
            template_id=template_id,
            fields=sorted(changes),
        )
        return saved

    def delete_template(self, template_id: str) -> None:
        """Raises NotFoundError for an unknown template id."""
        if not self.repository.delete_template(template_id):
            raise NotFoundError(f"template not found: {template_id}")
        logger.info("notification_template_deleted", template_id=template_id)

    def get_template(self, template_id: str) -> NotificationTemplate:
        template = self.repository.get_template(template_id)
        if template is None:
            raise NotFoundError(f"template not found: {template_id}")
        return template

    def list_templates(
        self, template_type: Optional[str] = None, active_only: bool = False
    ) -> List[NotificationTemplate]:
        return self.repository.list_templates(
            template_type=template_type, active_only=active_only
        )

    def render(self, template_type: str, variables: Mapping[str, Any]) -> RenderedMessage:
        """Render the active template of `template_type`.

        Raises:
            TemplateNotFoundError: No active template of that type
            MissingVariableError: A referenced placeholder has no value
        """
        template = self.repository.get_active_template(template_type)
        if template is None:
            raise TemplateNotFoundError(
                f"no active template for type '{template_type}'"
            )
        return render_template(template, variables)

    def render_by_id(
        self, template_id: str, variables: Mapping[str, Any]
    ) -> RenderedMessage:
        """Render a specific template record. Inactive templates are not found."""
        template = self.repository.get_template(template_id)
        if template is None or not template.is_active:
            raise TemplateNotFoundError(f"no active template with id '{template_id}'")
        return render_template(template, variables)
