#!/usr/bin/env python3
"""
=============================================================================
Multi-Agent Workflow Engine - Interactive CLI
=============================================================================

An interactive command-line client for the workflow engine:

- Conversation history sent back as previous_messages on every turn
- Thinking steps streamed from /api/v1/chat/stream
- Per-run cost, agent path and risk level
- Cache statistics and predictive cost report

USAGE:
------
    uv run python scripts/chat.py                       # Default server
    uv run python scripts/chat.py --url http://...      # Custom server URL
    uv run python scripts/chat.py --mode fastest        # Chat mode

COMMANDS:
---------
    /new      - Start a new conversation
    /mode X   - Switch chat mode (fastest, cheapest, balanced)
    /stats    - Show semantic cache statistics
    /costs    - Show the predictive cost report
    /flush    - Empty the semantic cache
    /history  - Show conversation history
    /help     - Show this help message
    /exit     - Exit the CLI

=============================================================================
"""

import argparse
import json
import uuid

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.theme import Theme

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "success": "green",
        "agent": "magenta",
    }
)
console = Console(theme=custom_theme)

CHAT_MODES = ("fastest", "cheapest", "balanced")


class ChatCLI:
    """Interactive CLI for the workflow engine."""

    def __init__(self, base_url: str = "http://localhost:8000", chat_mode: str = "balanced"):
        self.base_url = base_url.rstrip("/")
        self.chat_mode = chat_mode
        self.conversation_id: str = str(uuid.uuid4())
        self.user_id = "cli-user"
        self.messages: list[dict] = []
        self.client = httpx.Client(timeout=150.0)

    def print_banner(self) -> None:
        console.print("\n[bold cyan]Multi-Agent Workflow Engine[/bold cyan]")
        console.print("Type a message below. Use /help for available commands.")
        console.print(f"Conversation: [dim]{self.conversation_id[:8]}...[/dim]")
        console.print(f"Server:       [dim]{self.base_url}[/dim]")
        console.print(f"Mode:         [dim]{self.chat_mode}[/dim]\n")

    def print_help(self) -> None:
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Description")
        table.add_row("/new", "Start a new conversation")
        table.add_row("/mode <name>", "Switch chat mode (fastest, cheapest, balanced)")
        table.add_row("/stats", "Show semantic cache statistics")
        table.add_row("/costs", "Show the predictive cost report")
        table.add_row("/flush", "Empty the semantic cache")
        table.add_row("/history", "Show conversation history")
        table.add_row("/health", "Check server health")
        table.add_row("/help", "Show this help message")
        table.add_row("/exit, /quit", "Exit the CLI")
        console.print(table)

    def new_conversation(self) -> None:
        self.conversation_id = str(uuid.uuid4())
        self.messages = []
        console.print(f"New conversation started: [cyan]{self.conversation_id[:8]}...[/cyan]")

    def set_mode(self, mode: str) -> None:
        if mode not in CHAT_MODES:
            console.print(f"Unknown mode '{mode}'. Choose one of {', '.join(CHAT_MODES)}.", style="warning")
            return
        self.chat_mode = mode
        console.print(f"Chat mode set to [cyan]{mode}[/cyan]")

    def show_history(self) -> None:
        if not self.messages:
            console.print("No conversation history yet.")
            return
        for message in self.messages:
            label = "[cyan]You:[/cyan]" if message["role"] == "user" else "[green]Assistant:[/green]"
            console.print(f"{label} {message['content'][:100]}")

    def check_health(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            console.print(f"Cannot connect to server: {e}", style="error")
            return False

        if response.status_code != 200:
            console.print(f"Server returned {response.status_code}", style="error")
            return False

        console.print(f"Server healthy (v{response.json().get('version', '?')})", style="success")
        return True

    def show_table(self, title: str, data: dict) -> None:
        table = Table(title=title)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, indent=1)
            table.add_row(key, str(value))
        console.print(table)

    def show_stats(self) -> None:
        try:
            response = self.client.get(f"{self.base_url}/cache/stats")
            response.raise_for_status()
        except httpx.HTTPError as e:
            console.print(f"Error fetching stats: {e}", style="error")
            return
        self.show_table("Semantic Cache", response.json())

    def show_costs(self) -> None:
        try:
            response = self.client.get(
                f"{self.base_url}/api/v1/analytics/costs", params={"user_id": self.user_id}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            console.print(f"Error fetching cost report: {e}", style="error")
            return
        self.show_table("Predictive Cost Report", response.json())

    def flush_cache(self) -> None:
        try:
            response = self.client.delete(f"{self.base_url}/cache")
            response.raise_for_status()
        except httpx.HTTPError as e:
            console.print(f"Error clearing cache: {e}", style="error")
            return
        console.print(f"Cache cleared ({response.json().get('removed', 0)} entries)", style="success")

    def send(self, user_input: str) -> dict | None:
        """Send one message over the SSE endpoint and render the events."""
        payload = {
            "message": user_input,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "chat_mode": self.chat_mode,
            "previous_messages": self.messages,
        }

        result = None
        event_type = None
        try:
            with self.client.stream("POST", f"{self.base_url}/api/v1/chat/stream", json=payload) as response:
                if response.status_code != 200:
                    console.print(f"API error: {response.status_code}", style="error")
                    return None

                for line in response.iter_lines():
                    if line.startswith("event:"):
                        event_type = line[6:].strip()
                        continue
                    if not line.startswith("data:"):
                        continue

                    data = json.loads(line[5:].strip())
                    if event_type == "thinking":
                        console.print(f"[dim]  - {data['step']}[/dim]")
                    elif event_type == "message":
                        result = data
        except httpx.TimeoutException:
            console.print("Request timed out", style="error")
            return None
        except httpx.HTTPError as e:
            console.print(f"Error: {e}", style="error")
            return None

        if result is None:
            return None

        console.print()
        console.print(Markdown(result["response"]))
        console.print(
            f"\n[dim]cost=${result['cost']:.6f} | risk={result['risk_level']} | "
            f"cache_hit={result['cache_hit']}[/dim]"
        )
        console.print(f"[agent]{' -> '.join(result['agent_path'])}[/agent]")

        self.messages.append({"role": "user", "content": user_input})
        self.messages.append({"role": "agent", "content": result["response"]})
        return result

    def run(self) -> None:
        """Main REPL loop."""
        self.print_banner()

        if not self.check_health():
            console.print("\n[warning]Server not responding. Start it with:[/warning]")
            console.print("[dim]   uv run uvicorn agentflow.main:app --port 8000[/dim]\n")

        while True:
            try:
                user_input = console.input("\n[bold cyan]You>[/bold cyan] ").strip()
                if not user_input:
                    continue

                if not user_input.startswith("/"):
                    self.send(user_input)
                    continue

                cmd, _, arg = user_input.partition(" ")
                cmd = cmd.lower()

                if cmd in ("/exit", "/quit", "/q"):
                    console.print("Goodbye!", style="info")
                    break
                elif cmd == "/help":
                    self.print_help()
                elif cmd == "/new":
                    self.new_conversation()
                elif cmd == "/mode":
                    self.set_mode(arg.strip().lower())
                elif cmd == "/history":
                    self.show_history()
                elif cmd == "/stats":
                    self.show_stats()
                elif cmd == "/costs":
                    self.show_costs()
                elif cmd == "/flush":
                    self.flush_cache()
                elif cmd == "/health":
                    self.check_health()
                else:
                    console.print(f"Unknown command: {cmd}. Use /help for available commands.", style="warning")

            except KeyboardInterrupt:
                console.print("\nGoodbye!", style="info")
                break
            except EOFError:
                break

        self.client.close()


def main():
    parser = argparse.ArgumentParser(
        description="Interactive CLI for the multi-agent workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run python scripts/chat.py
  uv run python scripts/chat.py --url http://192.168.1.100:8000 --mode cheapest
        """,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Base URL of the API server (default: http://localhost:8000)",
    )
    parser.add_argument("--mode", choices=CHAT_MODES, default="balanced", help="Chat mode")

    args = parser.parse_args()

    cli = ChatCLI(base_url=args.url, chat_mode=args.mode)
    cli.run()


if __name__ == "__main__":
    main()
