"""CompileGraph CLI: explain why an Elixir source file must recompile."""

__version__ = "0.3.0"
