"""Entry point for the POS receipt console."""

from __future__ import annotations

from posreceipt.console_app import PosConsoleApp, configure_logging


def main() -> None:
    """Run the Textual application."""
    configure_logging()
    PosConsoleApp().run()


if __name__ == "__main__":
    main()
