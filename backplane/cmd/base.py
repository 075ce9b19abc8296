"""
Base class for the backplane-operator subcommands. A command names its
subcommand, declares its own runtime arguments and runs once the library
config flags from the command line have been applied.
"""

# Standard
import abc
import argparse


class CmdBase(abc.ABC):
    """A subcommand of the backplane-operator entrypoint"""

    # Name of the subcommand on the command line
    name: str = None

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Register the subcommand with its runtime arguments and bind this
        command as its handler. Library config flags are added separately by
        the entrypoint.

        Args:
            subparsers:  argparse._SubParsersAction
                The subparser section of the main parser

        Returns:
            parser:  argparse.ArgumentParser
                The parser for this subcommand
        """
        assert self.name, f"{type(self).__name__} does not name its subcommand"
        parser = subparsers.add_parser(self.name, help=self.__doc__)
        self.add_args(parser.add_argument_group("Runtime Configuration"))
        parser.set_defaults(func=self.cmd)
        return parser

    @abc.abstractmethod
    def add_args(self, group: argparse._ArgumentGroup):
        """Add the arguments this command reads at runtime"""

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace):
        """Run the command with the parsed arguments"""
