from chefboard_grocery.cli import cli

cli(prog_name="grocery")
