"""Placeholder templates for documentation pages.

Templates are plain HTML files with ``{{KEY}}`` placeholders. When a
template file is missing a built-in page with the same content is used
instead, so documentation never fails for lack of a template.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

PLACEHOLDER_REGEX = re.compile(r"\{\{([^{}]+)\}\}")
UNREPLACED_REGEX = re.compile(r"\{\{([A-Z_]+)\}\}")


def load_template(path: Optional[Union[str, Path]]) -> Optional[str]:
    """Read a template file, or None if it cannot be read."""
    if not path:
        return None
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Template not found, using built-in page", template=str(path), error=str(e))
        return None


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``{{KEY}}`` in template with ``variables[KEY]``.

    Keys mapped to None render as an empty string. Placeholders left in
    the output are reported as a warning and kept verbatim.

    Args:
        template: Template text
        variables: Placeholder values

    Returns:
        Rendered text
    """
    unreplaced: List[str] = []

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            if UNREPLACED_REGEX.fullmatch(match.group(0)):
                unreplaced.append(match.group(0))
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    rendered = PLACEHOLDER_REGEX.sub(substitute, template)
    if unreplaced:
        logger.warning("Unreplaced template variables", placeholders=unreplaced)
    return rendered


FALLBACK_VERSION_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{PLUGIN_NAME}} v{{VERSION}}</title>
  <style>
    body { font-family: sans-serif; max-width: 900px; margin: 0 auto; padding: 2rem; }
    .version-selector { margin: 1rem 0; }
    .metadata { background: #f5f5f5; padding: 1rem; margin: 1rem 0; }
    .metadata-item { display: flex; gap: 1rem; }
    .metadata-label { font-weight: 600; min-width: 8rem; }
    .tag { background: #e0e7ff; padding: 0.1rem 0.5rem; border-radius: 4px; margin-right: 0.25rem; }
  </style>
</head>
<body>
  <p><a href="../index.html">&larr; All versions</a></p>
  {{VERSION_SELECTOR}}
  <h1>{{PLUGIN_NAME}}</h1>
  <p>Version: {{VERSION}}</p>
  <div class="metadata">
    {{DESCRIPTION_ITEM}}
    {{METADATA_ITEMS}}
  </div>
  {{COMMANDS_SECTION}}
  <div class="readme">
    {{README_CONTENT}}
  </div>
  <hr>
  <p><a href="{{ARCHIVE_URL}}">Download {{ARCHIVE_NAME}}</a> ({{ARCHIVE_SIZE}})</p>
</body>
</html>
"""

FALLBACK_VERSION_INDEX_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{PLUGIN_NAME}} - Version History</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; background: #f5f5f5; }
    header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 3rem 0; text-align: center; }
    h1 { font-size: 2.5rem; margin-bottom: 0.5rem; }
    .container { max-width: 900px; margin: 2rem auto; padding: 0 2rem; }
    .back-link { display: inline-block; margin-bottom: 1rem; color: rgba(255, 255, 255, 0.9); text-decoration: none; }
    .version-list { background: white; border-radius: 8px; overflow: hidden; }
    .version-item { padding: 1.5rem; border-bottom: 1px solid #e0e0e0; display: flex; align-items: center; justify-content: space-between; }
    .version-item:last-child { border-bottom: none; }
    .version-number { font-size: 1.3rem; font-weight: 600; color: #667eea; font-family: 'Monaco', monospace; }
    .version-badge { display: inline-block; padding: 0.2rem 0.6rem; border-radius: 4px; font-size: 0.75rem; font-weight: 600; text-transform: uppercase; margin-left: 0.5rem; }
    .badge-latest { background: #4caf50; color: white; }
    .version-link { padding: 0.6rem 1.2rem; background: #667eea; color: white; text-decoration: none; border-radius: 6px; }
  </style>
</head>
<body>
  <header>
    <div class="container">
      <a href="../../index.html" class="back-link">&larr; Back to All Plugins</a>
      <h1>{{PLUGIN_NAME}}</h1>
      <p>Version History</p>
    </div>
  </header>
  <div class="container">
    <div class="version-list">
      {{VERSION_ITEMS}}
    </div>
  </div>
</body>
</html>
"""

ROOT_INDEX_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Command Launcher Plugins</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; background: #f5f5f5; }
    .container { max-width: 1200px; margin: 0 auto; padding: 2rem; }
    header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 3rem 0; margin-bottom: 3rem; }
    header h1 { font-size: 2.5rem; margin-bottom: 0.5rem; }
    .plugins-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(300px, 1fr)); gap: 2rem; }
    .plugin-card { background: white; border-radius: 8px; padding: 1.5rem; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
    .plugin-card h3 a { color: #667eea; text-decoration: none; }
    .version { display: inline-block; background: #e0e7ff; color: #667eea; padding: 0.25rem 0.75rem; border-radius: 12px; font-size: 0.875rem; font-weight: 600; }
    .description { color: #666; margin: 1rem 0; }
    .tags { display: flex; flex-wrap: wrap; gap: 0.5rem; margin-top: 1rem; }
    .tag { background: #f3f4f6; padding: 0.25rem 0.75rem; border-radius: 4px; font-size: 0.875rem; color: #666; }
    footer { text-align: center; padding: 2rem 0; color: #666; border-top: 1px solid #ddd; margin-top: 3rem; }
  </style>
</head>
<body>
  <header>
    <div class="container">
      <h1>Command Launcher Plugins</h1>
      <p>Extensible command-line tools for your workflow</p>
    </div>
  </header>
  <div class="container">
    <div class="plugins-grid">
      {{PLUGIN_CARDS}}
    </div>
  </div>
  <footer>
    <div class="container">
      <p>Generated on {{GENERATED}}</p>
    </div>
  </footer>
</body>
</html>
"""
