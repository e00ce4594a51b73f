from polybrain.ui.cli import run

run()
