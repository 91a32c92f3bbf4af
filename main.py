from rich.pretty import pprint

from commodore import *

__prog__ = "pizza"

program = command("pizza").describe("order a pizza").version("0.0.0")
program.option("-p, --peppers", "add peppers")
program.option("-c, --cheese <type>", "add the specified type of cheese", "marble")
program.option("--no-sauce", "remove sauce")
program.add_option(Option("-s, --size <size>", "pizza size").choices(["small", "medium", "large"]).env("PIZZA_SIZE"))


def order(opts, command):
    pprint(opts)


if __name__ == '__main__':
    program.action(order)
    program.parse()
