#!/usr/bin/env python3
"""Interactive chat CLI for testing the chat widget backend."""

import json
import sys

import httpx
from cuid2 import cuid_wrapper
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

new_session_id = cuid_wrapper()


class ChatCLI:
    """Interactive chat interface that plays the part of the embedded widget."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id = new_session_id()
        self.history: list[dict[str, str]] = []
        self.console = Console()
        # Owner replies can take minutes to arrive
        self.client = httpx.Client(timeout=httpx.Timeout(10.0, read=None))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]💬 Chatbridge - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /clear, /load, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print(f"[green]✅ Connected[/green] [dim](session {self.session_id})[/dim]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.session_id = new_session_id()
                    self.history = []
                    self.console.print(f"[yellow]🔄 New session {self.session_id}[/yellow]")
                    continue
                elif user_input.lower() == "/load":
                    self._load_history()
                    continue
                elif user_input.strip() == "":
                    continue

                reply = self._send_message(user_input)
                if reply is not None:
                    self.history.append({"sender": "user", "text": user_input})
                    self.history.append({"sender": "bot", "text": reply})

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> str | None:
        """Send a message and print the streamed reply. Returns the full reply text."""
        payload = {"message": message, "sessionId": self.session_id, "history": self.history}
        reply_parts: list[str] = []

        self.console.print("[bold green]Assistant[/bold green]: ", end="")
        try:
            with self.client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"\n[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return None

                for line in response.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[len("data: ") :]
                    if data == "[DONE]":
                        break

                    event = json.loads(data)
                    if event.get("type") == "waiting":
                        self.console.print(f"\n[dim]⏳ {event['message']}[/dim]")
                        self.console.print("[bold green]Assistant[/bold green]: ", end="")
                    elif event.get("type") == "error":
                        self.console.print(f"\n[red]❌ {event['message']}[/red]")
                        return None
                    elif "text" in event:
                        reply_parts.append(event["text"])
                        self.console.print(event["text"], end="", markup=False, highlight=False)

        except httpx.HTTPError as e:
            self.console.print(f"\n[red]❌ Connection error: {e}[/red]")
            return None

        self.console.print()
        return "".join(reply_parts)

    def _load_history(self) -> None:
        """Fetch the stored history for the current session."""
        response = self.client.post(f"{self.base_url}/api/chat/load", json={"sessionId": self.session_id})
        messages = response.json().get("messages")
        if not messages:
            self.console.print("[dim]No saved history for this session[/dim]")
            return

        self.history = messages
        for turn in messages:
            speaker = "You" if turn["sender"] == "user" else "Assistant"
            self.console.print(f"[bold]{speaker}[/bold]: {turn['text']}")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new session
• /load - Reload the saved history for this session
• /quit or /exit - Exit the chat

[bold]Owner replies:[/bold]
When the assistant checks with a team member, text the Twilio number from the
owner's phone. Each reply is added to the instructions; reply SEND to let the
assistant answer.
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
