"""Reader for Plan Explorer .pesession archives: index, showplan blocks, NRBF visitors and plan-shape normalisation."""

__version__ = "0.1.0"