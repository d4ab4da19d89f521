from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Sequence
from uuid import uuid4

from . import domain
from .store import CatalogStore, Command

logger = logging.getLogger(__name__)

# Legacy records carry no tab_key; they are grouped by channel type instead.
LEGACY_TYPES_BY_TAB: dict[str, frozenset[str]] = {
    "DIRECT": frozenset({"Direct", "Walk-in"}),
    "WEB": frozenset({"Direct"}),
    "OTA": frozenset({"OTA"}),
    "TA": frozenset({"Agent", "Travel Agent"}),
}

# Channel type assigned to channels created under a tab. Other tabs leave it blank.
CHANNEL_TYPE_BY_TAB: dict[str, str] = {
    "DIRECT": "Direct",
    "WEB": "Direct",
    "OTA": "OTA",
    "TA": "Agent",
}


def normalize_tab_key(label: str) -> str:
    return re.sub(r"\s+", "_", (label or "").strip().upper())


def channels_for_tab(channels: Sequence[domain.Channel], tab_key: str) -> list[domain.Channel]:
    """
    Channels grouped under a tab.

    Exact tab_key matches win. Only when there are none do legacy records
    (no tab_key) get matched through LEGACY_TYPES_BY_TAB.
    """
    direct = [ch for ch in channels if ch.tab_key == tab_key]
    if direct:
        return direct
    types = LEGACY_TYPES_BY_TAB.get(tab_key)
    if not types:
        return []
    return [ch for ch in channels if not ch.tab_key and ch.type in types]


@dataclass
class ChannelSelection:
    """Pending channel selection in the pricing grid."""

    selected_channel_id: str | None = None
    selected_channel_ids: list[str] = field(default_factory=list)

    def toggle(self, channel_id: str) -> None:
        if channel_id in self.selected_channel_ids:
            self.selected_channel_ids = [x for x in self.selected_channel_ids if x != channel_id]
        else:
            self.selected_channel_ids = [*self.selected_channel_ids, channel_id]

    def select_all(self, channel_ids: Sequence[str]) -> None:
        self.selected_channel_ids = list(channel_ids)

    def clear(self) -> None:
        self.selected_channel_ids = []

    def forget(self, channel_id: str) -> None:
        self.selected_channel_ids = [x for x in self.selected_channel_ids if x != channel_id]
        if self.selected_channel_id == channel_id:
            self.selected_channel_id = None


class ChannelRegistry:
    def __init__(self, store: CatalogStore, selection: ChannelSelection | None = None):
        self.store = store
        self.selection = selection if selection is not None else ChannelSelection()

    # reads

    def channels(self) -> list[domain.Channel]:
        return self.store.channels()

    def get(self, channel_id: str | None) -> domain.Channel | None:
        if not channel_id:
            return None
        for ch in self.store.channels():
            if ch.id == channel_id:
                return ch
        return None

    def require(self, channel_id: str) -> domain.Channel:
        ch = self.get(channel_id)
        if ch is None:
            raise domain.ChannelNotFound()
        return ch

    def group_by_tab(self, tab_key: str) -> list[domain.Channel]:
        return channels_for_tab(self.store.channels(), tab_key)

    def tabs(self) -> list[domain.ChannelTypeTab]:
        return self.store.tabs()

    def get_tab(self, tab_key: str) -> domain.ChannelTypeTab | None:
        for t in self.store.tabs():
            if t.key == tab_key:
                return t
        return None

    def orphaned_channels(self) -> list[domain.Channel]:
        visible = {t.key for t in self.store.tabs()}
        return [ch for ch in self.store.channels() if ch.tab_key and ch.tab_key not in visible]

    # channel commands

    def create(self, name: str, tab_key: str) -> domain.Channel:
        clean = (name or "").strip()
        if not clean:
            raise domain.EmptyName("Please enter a channel name")
        if self.get_tab(tab_key) is None:
            raise domain.TabNotFound()

        ch = domain.Channel(
            id=str(uuid4()),
            name=clean,
            type=CHANNEL_TYPE_BY_TAB.get(tab_key, ""),
            tab_key=tab_key,
            price_modifier_percent=0.0,
            status="active",
        )
        self.store.dispatch(Command(type="ADD_CHANNEL", payload=ch))
        self.selection.selected_channel_id = ch.id
        logger.info("Channel created (id=%s, tab=%s)", ch.id, tab_key)
        return ch

    def rename(self, channel_id: str, new_name: str) -> domain.Channel:
        clean = (new_name or "").strip()
        if not clean:
            raise domain.EmptyName("Please enter a channel name")
        old = self.require(channel_id)
        updated = dataclasses.replace(old, name=clean)
        self.store.dispatch(Command(type="UPDATE_CHANNEL", payload=updated))
        logger.info("Channel renamed (id=%s): %r -> %r", channel_id, old.name, clean)
        return updated

    def reassign(self, channel_id: str, tab_key: str) -> domain.Channel:
        if self.get_tab(tab_key) is None:
            raise domain.TabNotFound()
        old = self.require(channel_id)
        updated = dataclasses.replace(old, tab_key=tab_key)
        self.store.dispatch(Command(type="UPDATE_CHANNEL", payload=updated))
        logger.info("Channel reassigned (id=%s): %s -> %s", channel_id, old.tab_key, tab_key)
        return updated

    def update(self, channel_id: str, *, name: str | None = None, tab_key: str | None = None) -> domain.Channel:
        """Rename and/or reassign in one write; nothing is stored if either change is invalid."""
        old = self.require(channel_id)
        changes: dict = {}
        if name is not None:
            clean = name.strip()
            if not clean:
                raise domain.EmptyName("Please enter a channel name")
            changes["name"] = clean
        if tab_key is not None and tab_key != old.tab_key:
            if self.get_tab(tab_key) is None:
                raise domain.TabNotFound()
            changes["tab_key"] = tab_key
        if not changes:
            return old
        updated = dataclasses.replace(old, **changes)
        self.store.dispatch(Command(type="UPDATE_CHANNEL", payload=updated))
        logger.info("Channel updated (id=%s, fields=%s)", channel_id, ",".join(sorted(changes)))
        return updated

    def delete(self, channel_id: str) -> domain.Channel:
        old = self.require(channel_id)
        self.store.dispatch(Command(type="DELETE_CHANNEL", payload=channel_id))
        self.selection.forget(channel_id)
        logger.info("Channel deleted (id=%s)", channel_id)
        return old

    # tab commands

    def add_tab(self, label: str) -> str:
        key = normalize_tab_key(label)
        if not key:
            raise domain.EmptyName("Please enter a channel type name")
        if self.get_tab(key) is not None:
            raise domain.DuplicateTab(f'Channel type "{key}" already exists.')
        self.store.dispatch(Command(type="ADD_TAB", payload=domain.ChannelTypeTab(key=key, label=key)))
        logger.info("Channel type added (key=%s)", key)
        return key

    def rename_tab(self, tab_key: str, label: str) -> str:
        """Rename a user tab. Channels filed under the old key follow it."""
        tab = self.get_tab(tab_key)
        if tab is None:
            raise domain.TabNotFound()
        if tab.is_built_in:
            raise domain.BuiltInTab()
        new_key = normalize_tab_key(label)
        if not new_key:
            raise domain.EmptyName("Please enter a channel type name")
        if new_key == tab_key:
            return tab_key
        if self.get_tab(new_key) is not None:
            raise domain.DuplicateTab(f'Channel type "{new_key}" already exists.')

        commands = [Command(type="UPDATE_TAB", key=tab_key, payload=domain.ChannelTypeTab(key=new_key, label=new_key))]
        for ch in self.store.channels():
            if ch.tab_key == tab_key:
                commands.append(Command(type="UPDATE_CHANNEL", payload=dataclasses.replace(ch, tab_key=new_key)))
        self.store.dispatch_all(commands)
        logger.info("Channel type renamed: %s -> %s", tab_key, new_key)
        return new_key

    def remove_tab(self, tab_key: str) -> domain.ChannelTypeTab:
        """Hide a user tab. Its channels are left orphaned under the old key."""
        tab = self.get_tab(tab_key)
        if tab is None:
            raise domain.TabNotFound()
        if tab.is_built_in:
            raise domain.BuiltInTab()
        self.store.dispatch(Command(type="DELETE_TAB", payload=tab_key))
        logger.info("Channel type removed (key=%s)", tab_key)
        return tab
