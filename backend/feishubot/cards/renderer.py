"""
Response Renderer - Pure factories for every card the dispatcher emits.

Each function maps a decision (and the post-mutation session state it
depends on) to a card template. No I/O, no hidden state.
"""

from typing import Iterable, Optional

from .templates import (
    ActionRef,
    BalanceReport,
    Button,
    Confirm,
    ImageResult,
    MenuOption,
    Notice,
    SelectorMenu,
    Tone,
)
from ..models.card_action import CardKind
from ..models.session import AIMode, PicResolution

NEW_TOPIC_WARNING = (
    "Please note that this will start a brand new conversation. "
    "You will be unable to use the historical information of the previous topic"
)
KEEP_CHATTING_NOTE = (
    "We can continue to explore this topic and look forward to chatting with you. "
    "If you have other questions or topics you want to discuss, please tell me"
)


def clear_confirm_card(ref: ActionRef) -> Confirm:
    return Confirm(
        title="🆑 Robot reminder",
        body="Are you sure you want to clear the conversation and context?",
        footnote=NEW_TOPIC_WARNING,
        action_kind=CardKind.CLEAR,
        ref=ref,
        confirm_label="Confirm",
    )


def context_cleared_card() -> Notice:
    return Notice(
        title="🆑 Robot reminder",
        body="The context information of this topic has been deleted",
        footnote="We can start a brand new topic, keep looking for me to chat",
        tone=Tone.NEUTRAL,
    )


def context_retained_card() -> Notice:
    return Notice(
        title="🎒 Robot reminder",
        body="Still retain the context information of this topic",
        footnote=KEEP_CHATTING_NOTE,
        tone=Tone.SUCCESS,
    )


def pic_mode_confirm_card(ref: ActionRef) -> Confirm:
    return Confirm(
        title="🖼️ Robot reminder",
        body="Received a picture, do you want to enter the picture creation mode?",
        footnote=NEW_TOPIC_WARNING,
        action_kind=CardKind.PIC_MODE_CHANGE,
        ref=ref,
        confirm_label="Switch mode",
    )


def pic_mode_entry_card(ref: ActionRef, current: PicResolution = PicResolution.RES_256) -> SelectorMenu:
    """Entering picture mode, with the resolution selector."""
    return SelectorMenu(
        title="🖼️ Enter the picture creation mode",
        placeholder=f"Resolution: {current.value}",
        options=tuple(MenuOption(value=r.value, label=r.value) for r in PicResolution),
        footnote="Reminder: reply with text or a picture to let AI generate related pictures.",
        action_kind=CardKind.PIC_RESOLUTION,
        ref=ref,
        tone=Tone.INFO,
    )


def resolution_updated_text(resolution: PicResolution) -> str:
    return f"The resolution of the picture has been updated to {resolution.value}"


def image_result_card(image_key: str, prompt: str, ref: ActionRef) -> ImageResult:
    return ImageResult(
        image_key=image_key,
        action_kind=CardKind.PIC_TEXT_MORE,
        regenerate_value=prompt,
        ref=ref,
    )


def variant_result_card(image_key: str, ref: ActionRef) -> ImageResult:
    return ImageResult(
        image_key=image_key,
        action_kind=CardKind.PIC_VAR_MORE,
        regenerate_value=image_key,
        ref=ref,
    )


def failure_card(what: str, detail: Optional[str] = None) -> Notice:
    body = f"Sorry, {what} failed. Please try again later."
    return Notice(
        title="❌ Robot reminder",
        body=body,
        footnote=detail,
        tone=Tone.DANGER,
    )


def image_job_fallback_text(generated: bool) -> str:
    if generated:
        return "The picture was created but could not be shown. Please send the prompt again."
    return "Sorry, image generation failed. Please try again later."


def role_tags_card(ref: ActionRef, tags: Iterable[str]) -> SelectorMenu:
    return SelectorMenu(
        title="🛖 Please select the character category",
        placeholder="Choose character classification",
        options=tuple(MenuOption(value=t, label=t) for t in tags),
        footnote="Reminder: select a category so that we can recommend related characters for you.",
        action_kind=CardKind.ROLE_TAGS_CHOOSE,
        ref=ref,
    )


def role_list_card(ref: ActionRef, tag: str, titles: Iterable[str]) -> SelectorMenu:
    return SelectorMenu(
        title=f"🛖 Role list - {tag}",
        placeholder="View built-in roles",
        options=tuple(MenuOption(value=t, label=t) for t in titles),
        footnote="Reminder: choose a built-in scene to quickly enter role-playing mode.",
        action_kind=CardKind.ROLE_CHOOSE,
        ref=ref,
    )


def role_entry_card(system_prompt: str) -> Notice:
    return Notice(
        title="🥷 Entering role-playing mode",
        body=system_prompt,
        footnote=NEW_TOPIC_WARNING,
        tone=Tone.ACCENT,
        plain=True,
    )


def ai_mode_card(ref: ActionRef, current: AIMode) -> SelectorMenu:
    return SelectorMenu(
        title="🤖 AI mode selection",
        placeholder=f"Current mode: {current.value}",
        options=tuple(MenuOption(value=m.value, label=m.value) for m in AIMode),
        footnote="Reminder: choose a built-in mode to let AI understand your needs better.",
        action_kind=CardKind.AI_MODE_CHOOSE,
        ref=ref,
    )


def ai_mode_updated_text(ai_mode: AIMode) -> str:
    return f"AI mode selected: {ai_mode.value}"


def balance_card(total: float, used: float, available: float,
                 valid_from=None, valid_to=None) -> BalanceReport:
    return BalanceReport(
        total=total,
        used=used,
        available=available,
        valid_from=valid_from,
        valid_to=valid_to,
    )


def help_card(ref: ActionRef) -> Notice:
    return Notice(
        title="🎒 Need any help?",
        body="**I am a smart chat robot based on ChatGPT technology!**",
        sections=(
            "🆑 **Clear the topic context**\nText reply *clear* or */clear*",
            Button("Remove immediately", CardKind.CLEAR, "1", ref, style="danger"),
            "🤖 **AI mode selection**\nText reply *AI模式* or */ai_mode*",
            "🛖 **Built-in role list**\nText reply *角色列表* or */roles*",
            "🥷 **Role-playing mode**\nText reply *角色扮演* or */system* + space + role information",
            "🎤 **AI voice dialogue**\nSend voice directly in a private chat",
            "🎨 **Picture creation mode**\nText reply *图片创作* or */picture*",
            "🎰 **Token balance query**\nText reply *余额* or */balance*",
            "🎒 **Need more help**\nText reply *帮助* or */help*",
        ),
    )
