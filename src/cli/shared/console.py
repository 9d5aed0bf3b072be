"""Terminal output for the cluster-forge CLI.

``CLIConsole`` satisfies ``ConsoleLike``, so the same instance that renders
command headers and tables also receives the progress messages emitted by
chart workers while a plan runs.
"""

from collections.abc import Callable
from functools import wraps

import typer
from rich.console import Console, ConsoleRenderable
from rich.markup import escape
from rich.panel import Panel

from src.infra.helm.errors import DeploymentError


class CLIConsole:
    """Rich console wrapper for consistent CLI output.

    Chart workers call it from several threads at once; every method emits
    a single ``Console.print`` so lines from different charts never mix.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print(msg)

    def info(self, msg: str) -> None:
        self.console.print(f"[cyan]ℹ[/cyan]  {msg}")

    def ok(self, msg: str) -> None:
        self.console.print(f"[green]✅[/green] {msg}")

    def error(self, msg: str) -> None:
        self.console.print(f"[red]❌[/red] {msg}")

    def warn(self, msg: str) -> None:
        self.console.print(f"[yellow]⚠️[/yellow]  {msg}")

    def confirm_action(
        self,
        action: str,
        details: str | None = None,
        extra_warning: str | None = None,
        force: bool = False,
    ) -> bool:
        """Ask before touching releases that may hold live workloads.

        Args:
            action: What is about to happen (e.g. "Uninstall every chart")
            details: Which releases or resources are affected
            extra_warning: Shown highlighted below the details
            force: Skip the prompt and assume yes

        Returns:
            True if the user answered yes
        """
        if force:
            return True

        body = [f"[bold red]⚠️  {action}[/bold red]"]
        if details:
            body.append(f"\n{details}")
        if extra_warning:
            body.append(f"\n[yellow]{extra_warning}[/yellow]")

        self.console.print(
            Panel("\n".join(body), title="Confirmation Required", border_style="red")
        )

        try:
            answer = self.console.input(
                "\n[bold]Are you sure you want to proceed?[/bold] \\[y/N]: "
            )
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[dim]Cancelled.[/dim]")
            return False
        return answer.strip().lower() in ("y", "yes")

    def handle_error(
        self, message: str, details: str | None = None, exit_code: int = 1
    ) -> None:
        """Render a failed command and exit.

        Helm output is printed verbatim, so square brackets in it are
        escaped before it reaches rich markup.

        Raises:
            typer.Exit: Always, with ``exit_code``
        """
        self.console.print(f"\n[bold red]❌ {escape(message)}[/bold red]\n")
        if details:
            self.console.print(
                Panel(escape(details), title="Details", border_style="red")
            )
        raise typer.Exit(exit_code)

    def print_header(self, title: str, style: str = "blue") -> None:
        self.console.print(
            Panel.fit(f"[bold {style}]{title}[/bold {style}]", border_style=style)
        )


def with_error_handling(func: Callable[..., None]) -> Callable[..., None]:
    """Turn deployment failures into a rendered message and exit code.

    ``DeploymentError`` covers Helm failures, plan validation errors and
    failed plan runs. Anything else is a bug and propagates with its
    traceback.
    """

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except DeploymentError as e:
            console.handle_error(e.message, e.details)
        except KeyboardInterrupt:
            console.print("\n[dim]Operation cancelled by user.[/dim]")
            raise typer.Exit(130) from None

    return wrapper


# Shared console instance for consistent output
console = CLIConsole()
