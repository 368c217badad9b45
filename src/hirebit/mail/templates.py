from __future__ import annotations

from functools import lru_cache
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from hirebit.types import Decision


# template name, subject, header colour
DECISION_TEMPLATES: dict[Decision, tuple[str, str, str]] = {
    Decision.SHORTLIST: ("shortlist", "Congratulations! You've been shortlisted for {job_title}", "#2d2ddd"),
    Decision.FLAG: ("review", "Application Received - {job_title}", "#4a5568"),
    Decision.REJECT: ("rejection", "Application Update - {job_title}", "#6b7280"),
}


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    return Environment(
        loader=PackageLoader("hirebit", "templates"),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render(name: str, context: dict[str, Any]) -> str:
    return get_environment().get_template(name).render(**context)


def render_email(name: str, context: dict[str, Any]) -> tuple[str, str]:
    """Render the html/text pair stored as email/<name>.html and email/<name>.txt."""
    html = render(f"email/{name}.html", context)
    text = render(f"email/{name}.txt", context)
    return html, text.strip() + "\n"


def render_decision_email(status: Decision, context: dict[str, Any]) -> tuple[str, str, str]:
    name, subject, accent = DECISION_TEMPLATES[status]
    html, text = render_email(name, {**context, "accent": accent})
    return subject.format(job_title=context["job_title"]), html, text
