# mentorbot/app/keyboards/main.py

from aiogram.types import ReplyKeyboardMarkup, KeyboardButton

from mentorbot.app.i18n.loader import t


def main_menu(lang: str, is_mentor: bool = False) -> ReplyKeyboardMarkup:
    """
    Main reply menu, used as the navigation anchor.
    Mentors get their sessions dashboard on a second row.
    """
    keyboard = [
        [
            KeyboardButton(text=t("menu:mentors", lang)),
            KeyboardButton(text=t("menu:orders", lang)),
        ],
    ]
    if is_mentor:
        keyboard.append([KeyboardButton(text=t("menu:sessions", lang))])

    return ReplyKeyboardMarkup(
        keyboard=keyboard,
        resize_keyboard=True,
        is_persistent=True,
    )
