from rich.console import Console

# Handles
cout = Console()
cerr = Console(stderr=True)
