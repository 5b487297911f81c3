"""
Display utilities for the support chat CLI using Rich.

Maps ConversationEntry values to console output:
- user / bot messages
- main menu and FAQ sub-menus
- wizard prompts and the attachment editor
- the satisfaction survey
"""

from typing import Optional, Set
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from supportchat.conversation.log import ConversationEntry, EntryKind
from supportchat.utils.business_number import SecureNumberPad

SUPPORT_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "success": "green bold",
        "agent": "blue bold",
        "user": "magenta bold",
        "step": "yellow",
        "dim": "dim",
    }
)

KEYPAD_LABELS = "abcdefghij"


class ChatDisplay:
    """
    Rich-based renderer for the conversation log.

    Also implements the controller's view contract (notices and partial
    transcripts).
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(theme=SUPPORT_THEME)
        self._rendered: Set[str] = set()

    def print_banner(self):
        self.console.print(
            Panel(
                Text("💬 가람포스텍 AI 지원센터", justify="center"),
                style="bold cyan",
                border_style="cyan",
            )
        )

    def print_help(self):
        help_text = """
[bold]Menu:[/bold]
  • [cyan]/menu[/cyan] - Back to the main menu
  • [cyan]/inquiry <n>[/cyan] - Start inquiry n from the menu
  • [cyan]/category <n>[/cyan] - Open FAQ category n
  • [cyan]/faq <n>[/cyan] - Show answer n of the open category

[bold]Inquiry:[/bold]
  • [cyan]/period <choice>[/cyan] - 상반기 / 하반기 / 전체 / 직접 입력
  • [cyan]/pad[/cyan] - Enter the business number on the secure pad
  • [cyan]/attach <path>[/cyan] - Attach a file (max 3)
  • [cyan]/detach <n>[/cyan] - Remove attachment n

[bold]Voice:[/bold]
  • [cyan]/mic[/cyan] - Speak one question (stops on silence)
  • [cyan]/stream[/cyan] - Continuous recognition
  • [cyan]/stop[/cyan] - Stop listening

[bold]General:[/bold]
  • [cyan]/review <1-5>[/cyan] - Rate this conversation
  • [cyan]help[/cyan] - Show this help
  • [cyan]quit[/cyan] / [cyan]exit[/cyan] - Exit
        """
        self.console.print(Panel(help_text.strip(), title="Help", border_style="dim"))

    def prompt(self) -> str:
        self.console.print()
        return self.console.input("[magenta bold]You:[/magenta bold] ")

    # --- view contract ---

    def show_notice(self, title: str, message: str):
        self.console.print(f"[warning]⚠️ {title}: {message}[/warning]")

    def show_partial_transcript(self, text: str):
        self.console.print(f"[dim]🎙️ {text}…[/dim]")

    def print_info(self, message: str):
        self.console.print(f"[info]ℹ️ {message}[/info]")

    def print_error(self, message: str):
        self.console.print(
            Panel(f"[error]{message}[/error]", title="❌ Error", border_style="red")
        )

    # --- entries ---

    def render_entry(self, entry: ConversationEntry):
        """Log listener: print an appended entry, or note a replaced one."""
        updated = entry.key in self._rendered
        self._rendered.add(entry.key)

        if entry.kind == EntryKind.USER_MESSAGE:
            self.console.print(f"[user]{escape(entry.text)}[/user]", justify="right")
        elif entry.kind == EntryKind.BOT_MESSAGE:
            self._print_bot(entry)
        elif entry.kind == EntryKind.MENU_BLOCK:
            self._print_menu(entry)
        elif entry.kind == EntryKind.SUB_MENU_BLOCK:
            self._print_submenu(entry)
        elif entry.kind == EntryKind.WIZARD_STEP:
            self._print_wizard_step(entry, updated)
        elif entry.kind == EntryKind.FEEDBACK_BLOCK:
            self._print_feedback(entry)

    def _print_bot(self, entry: ConversationEntry):
        payload = entry.payload
        if payload.get("greeting"):
            self.console.print(f"[bold]{escape(entry.text)}[/bold]")
            self.console.print(f"[dim]{payload.get('description', '')}[/dim]")
            return
        border = "yellow" if payload.get("fallback") else "blue"
        self.console.print(
            Panel(
                escape(entry.text),
                title=escape(payload.get("title") or "🤖 상담봇"),
                title_align="left",
                border_style=border,
            )
        )

    def _print_menu(self, entry: ConversationEntry):
        table = Table(title="메뉴", show_lines=False)
        table.add_column("명령", style="cyan")
        table.add_column("항목", style="bold")
        table.add_column("설명", style="dim")
        for i, item in enumerate(entry.payload.get("inquiries", []), 1):
            table.add_row(f"/inquiry {i}", f"💬 {item['label']}", "문의 접수")
        for i, category in enumerate(entry.payload.get("categories", []), 1):
            icon = category.get("icon_emoji") or "📋"
            table.add_row(f"/category {i}", f"{icon} {category['name']}", category.get("description", ""))
        self.console.print(table)

    def _print_submenu(self, entry: ConversationEntry):
        category = entry.payload.get("category", {})
        lines = [f"[dim]{entry.text}[/dim]"]
        for i, faq in enumerate(entry.payload.get("faqs", []), 1):
            lines.append(f"  [cyan]{i}[/cyan]. {escape(faq['question'])}")
        lines.append("")
        lines.append("[dim]/menu - 이전 메뉴 보기[/dim]")
        self.console.print(
            Panel("\n".join(lines), title=category.get("name", ""), title_align="left", border_style="cyan")
        )

    def _print_wizard_step(self, entry: ConversationEntry, updated: bool):
        payload = entry.payload
        title = escape(f"[{payload.get('category_label', '')}]")
        title += f" ({payload.get('position', 0)}/{payload.get('total', 0)})"
        lines = [escape(entry.text)]
        for i, option in enumerate(payload.get("options", []), 1):
            lines.append(f"  [cyan]{i}[/cyan]. {option['label']}")
        if payload.get("editor"):
            attachments = payload.get("attachments", [])
            lines.append("")
            lines.append(f"[dim]첨부 파일 ({len(attachments)}/{payload.get('max_attachments', 3)})[/dim]")
            for i, item in enumerate(attachments, 1):
                lines.append(f"  {i}. {escape(item['file_name'])} [dim]({item['size']} bytes)[/dim]")
        if updated:
            title += " · 갱신됨"
        self.console.print(Panel("\n".join(lines), title=title, title_align="left", border_style="yellow"))

    def _print_feedback(self, entry: ConversationEntry):
        ratings = " ".join(f"[cyan]{r}[/cyan]" for r in entry.payload.get("ratings", []))
        self.console.print(
            Panel(f"{entry.text}\n{ratings}  [dim](/review <n>)[/dim]", title="⭐ 만족도", border_style="green")
        )

    def print_keypad(self, pad: SecureNumberPad):
        grid = Table.grid(padding=(0, 2))
        for _ in range(5):
            grid.add_column(justify="center")
        cells = [f"[cyan]{label}[/cyan]:[bold]{digit}[/bold]" for label, digit in zip(KEYPAD_LABELS, pad.layout)]
        grid.add_row(*cells[:5])
        grid.add_row(*cells[5:])
        self.console.print(
            Panel(
                grid,
                title=f"사업자등록번호: {pad.display or '-'}",
                subtitle="글자를 입력해 숫자를 누르세요 · < 지우기 · ok 확인 · x 취소",
                border_style="cyan",
            )
        )
