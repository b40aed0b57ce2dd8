"""Plain-text terminal renderer for mirrored items."""

from itertools import groupby

import typer

from gh_offline.core import ItemRenderer, MirroredItem, ReactionKind

REACTION_SYMBOLS = {
    ReactionKind.PLUS_ONE: "[+1]",
    ReactionKind.MINUS_ONE: "[-1]",
    ReactionKind.LAUGH: ":D",
    ReactionKind.HOORAY: "^_^",
    ReactionKind.CONFUSED: ":/",
    ReactionKind.HEART: "<3",
    ReactionKind.ROCKET: "^^",
    ReactionKind.EYES: "o_o",
}


def item_url(mirrored: MirroredItem) -> str:
    """Web URL of the item on GitHub."""
    path = "pull" if mirrored.item.is_pull_request else "issues"
    return f"https://github.com/{mirrored.repository.full_name}/{path}/{mirrored.item.number}"


class TextRenderer(ItemRenderer):
    """Render item lists and item details as terminal text."""

    def __init__(self, color: bool = False) -> None:
        self.color = color

    def _style(self, text: str, **styles) -> str:
        return typer.style(text, **styles) if self.color else text

    def render_list(self, items: list[MirroredItem], show_kind: bool = False, show_state: bool = False) -> str:
        """Render items grouped by repository, keeping the query order within each group."""
        if not items:
            return "No items found.\n"

        lines: list[str] = []
        ordered = sorted(items, key=lambda m: (m.repository.owner.lower(), m.repository.name.lower()))

        for full_name, group in groupby(ordered, key=lambda m: m.repository.full_name):
            group_items = list(group)
            width = max(len(str(m.item.number)) for m in group_items)

            lines.append("")
            lines.append(self._style(full_name, bold=True))

            for mirrored in group_items:
                item = mirrored.item
                metadata = []
                if show_kind:
                    metadata.append("PR" if item.is_pull_request else "ISSUE")
                if show_state:
                    metadata.append(item.state.value.upper())
                metadata.append(item.created_at.date().isoformat())

                number = f"#{item.number:>{width}}"
                lines.append(f"{number} {self._style(' '.join(metadata), dim=True)} {self._style(item.title, bold=True)}")

        return "\n".join(lines) + "\n"

    def render_detail(self, mirrored: MirroredItem) -> str:
        """Render one item with labels, reactions and body."""
        item = mirrored.item

        header = [self._style(item.title, bold=True)]
        if item.author:
            header.append(self._style(f"by {item.author}", dim=True))
        header.append(self._style(item.state.value.upper(), fg="green" if item.state.value == "open" else "red"))
        if item.is_pull_request:
            header.append(self._style("PULL REQUEST", fg="cyan"))

        lines = [" ".join(header), self._style(item_url(mirrored), dim=True)]

        if mirrored.labels:
            lines.append(" ".join(self._style(label.name, fg="cyan") for label in mirrored.labels))

        reactions = [r for r in mirrored.reactions if r.count > 0]
        if reactions:
            lines.append("\t".join(f"{REACTION_SYMBOLS.get(r.kind, '?')} {r.count}" for r in reactions))

        lines.append("")
        if item.body.strip():
            lines.append(item.body)
        else:
            lines.append(self._style("No description provided", dim=True))

        return "\n".join(lines) + "\n"
