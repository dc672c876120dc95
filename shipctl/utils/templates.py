"""Jinja2 rendering of node-side configuration files."""
import os

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from shipctl.errors import ConfigurationError


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates')


_env = Environment(
    loader=FileSystemLoader(get_template_path()),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_template(name: str, **context) -> str:
    """Render a packaged template.

    Raises:
        ConfigurationError: If the template is missing, broken or lacks a variable
    """
    try:
        return _env.get_template(name).render(**context)
    except TemplateNotFound as e:
        raise ConfigurationError(f"Template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise ConfigurationError(f"Template syntax error in {name}: {e}") from e
    except UndefinedError as e:
        raise ConfigurationError(f"Missing required template variable in {name}: {e}") from e
