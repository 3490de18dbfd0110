# domain/model/changes.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Set

from application.dto.mailbox_dto import MailboxDTO


@dataclass
class MailboxSnapshot:
    mailboxes: List[MailboxDTO]
    state: str


@dataclass
class ChangeSet:
    """
    Delta acumulado de uma ou mais páginas de `Mailbox/changes`.

    `created` e `updated` nunca se sobrepõem a `destroyed`: a página mais
    recente decide o destino de cada id.
    """

    new_state: str
    created: Set[str] = field(default_factory=set)
    updated: Set[str] = field(default_factory=set)
    destroyed: Set[str] = field(default_factory=set)
    mailboxes: Dict[str, MailboxDTO] = field(default_factory=dict)

    # ---- merge de páginas ------------------------------------------------ #
    def merge(self, page: "ChangePage") -> None:
        for mailbox in page.created:
            self.updated.discard(mailbox.id)
            self.destroyed.discard(mailbox.id)
            self.created.add(mailbox.id)
            self.mailboxes[mailbox.id] = mailbox

        for mailbox in page.updated:
            self.destroyed.discard(mailbox.id)
            if mailbox.id not in self.created:
                self.updated.add(mailbox.id)
            self.mailboxes[mailbox.id] = mailbox

        for server_id in page.destroyed:
            self.created.discard(server_id)
            self.updated.discard(server_id)
            self.mailboxes.pop(server_id, None)
            self.destroyed.add(server_id)

        self.new_state = page.new_state

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.destroyed)


@dataclass
class ChangePage:
    """Uma resposta de `Mailbox/changes` com os objetos já resolvidos."""

    new_state: str
    has_more: bool
    created: List[MailboxDTO] = field(default_factory=list)
    updated: List[MailboxDTO] = field(default_factory=list)
    destroyed: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CannotCalculateChanges:
    """
    Sinal interno: o servidor não consegue calcular o delta a partir do
    estado informado. Nunca sai do motor de reconciliação.
    """

    since_state: str
    description: str | None = None
