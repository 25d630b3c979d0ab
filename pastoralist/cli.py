"""Pastoralist CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click

from pastoralist import __version__


@click.group()
@click.version_option(version=__version__, prog_name="pastoralist")
@click.help_option("-h", "--help")
def cli():
    """Pastoralist - keep dependency overrides honest

    \b
    QUICK START:
      pastoralist security                      # OSV scan of ./package.json
      pastoralist security --provider github    # Dependabot alerts
      pastoralist security --auto-fix           # write fixes (backup first)
      pastoralist rollback package.json.backup-1715629847123

    \b
    For detailed options: pastoralist <command> --help"""
    pass


from pastoralist.commands.security import rollback, security

cli.add_command(security)
cli.add_command(rollback)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
