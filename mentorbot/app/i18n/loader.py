"""
mentorbot/app/i18n/loader.py

UI copy, one entry per line of messages.txt:

    en:booking:checkout | "Your slots with %s are reserved.\nAmount: %s"

Templates take %-style arguments. The catalog is read on first lookup;
``load_messages`` reloads it (tests point it at another file).
"""

import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LANG = "en"

MESSAGES_PATH = Path(__file__).resolve().parent / "messages.txt"

ENTRY_RE = re.compile(r'^(?P<lang>\w+):(?P<key>[^|]+?)\s*\|\s*"(?P<text>.*)"$')

# {lang: {key: template}}
_catalog: dict[str, dict[str, str]] = {}


def load_messages(path: str | Path = MESSAGES_PATH) -> dict[str, dict[str, str]]:
    path = Path(path)
    if not path.exists():
        raise RuntimeError(f"messages file not found: {path}")

    catalog: dict[str, dict[str, str]] = {}
    for lineno, raw_line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        m = ENTRY_RE.match(line)
        if m is None:
            logger.warning(f"[I18N] {path.name}:{lineno} skipped, expected lang:key | \"text\"")
            continue

        catalog.setdefault(m["lang"], {})[m["key"]] = m["text"].replace("\\n", "\n").strip()

    _catalog.clear()
    _catalog.update(catalog)
    return _catalog


def _messages() -> dict[str, dict[str, str]]:
    if not _catalog:
        load_messages()
    return _catalog


def t(key: str, lang: Optional[str] = None, *args) -> str:
    """Text for ``key`` in ``lang``, then in DEFAULT_LANG, then the key itself."""
    messages = _messages()
    text = (
        messages.get(lang or DEFAULT_LANG, {}).get(key)
        or messages.get(DEFAULT_LANG, {}).get(key)
        or key
    )
    if not args:
        return text

    try:
        return text % args
    except (TypeError, ValueError):
        logger.warning(f"[I18N] {key}: template does not take {len(args)} argument(s)")
        return text


def t_all(key: str) -> list[str]:
    """
    Every translation of a key, so reply buttons match whatever the
    user's language:

        @router.message(F.text.in_(t_all("menu:mentors")))
    """
    translations = []
    for lang, entries in sorted(_messages().items()):
        text = entries.get(key)
        if text and text not in translations:
            translations.append(text)
    return translations
