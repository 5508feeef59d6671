"""Extension Host: namespaced extension management

Installs extension packages into isolated namespaces, activates them in a
sandbox and resolves which extension supplies each named panel.

Usage:
    python main.py list
    python main.py install my-extension.zip --namespace local
"""

from extension_host.cli.cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
