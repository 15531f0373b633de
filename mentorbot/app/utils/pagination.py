"""
mentorbot/app/utils/pagination.py

Page slicing and the shared [prev | page/total | next] row.
"""

import math
from typing import Sequence, TypeVar

from aiogram.types import InlineKeyboardButton

from mentorbot.app.i18n.loader import t

T = TypeVar("T")


def paginate(items: Sequence[T], page: int, page_size: int) -> tuple[list[T], int, int]:
    """
    Returns:
        (items on the page, clamped page index, total pages)
    """
    total_pages = max(1, math.ceil(len(items) / page_size))
    page = max(0, min(page, total_pages - 1))
    start = page * page_size
    return list(items[start:start + page_size]), page, total_pages


def build_nav_row(
    page: int,
    total_pages: int,
    page_cb: str,
    noop_cb: str,
    lang: str,
) -> list[InlineKeyboardButton]:
    """
    Empty when there is a single page.

    Args:
        page_cb: callback template with ``{p}``, e.g. ``"mnt:page:{p}"``
        noop_cb: callback for the counter and disabled arrows
    """
    if total_pages <= 1:
        return []

    prev_btn = (
        InlineKeyboardButton(text=t("common:prev", lang), callback_data=page_cb.format(p=page - 1))
        if page > 0
        else InlineKeyboardButton(text=" ", callback_data=noop_cb)
    )
    next_btn = (
        InlineKeyboardButton(text=t("common:next", lang), callback_data=page_cb.format(p=page + 1))
        if page < total_pages - 1
        else InlineKeyboardButton(text=" ", callback_data=noop_cb)
    )
    counter = InlineKeyboardButton(text=f"{page + 1}/{total_pages}", callback_data=noop_cb)

    return [prev_btn, counter, next_btn]
