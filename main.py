import asyncio

from rich.pretty import pprint

from parley import *

__prog__ = "parley-demo"

commands = Commands(shell=True, fancy=True, colorful=True, deferred=True)

colours = SimpleConverter.fixed(("red", "green", "blue"), str, str, sensitivity=60)


@commands.command(aliases=("hi",))
async def greet(context, name=Argument(str), times=Argument(int, default=1, descr="how many times")):
    """greet someone, possibly several times"""
    for _ in range(times):
        print(f"hello {name} (from {context})")


admin = commands.group("admin", descr="moderation commands")


@admin.command()
def ban(context, user=Argument(Snowflake), reason=Argument(str, default="no reason given")):
    """ban a member"""
    print(f"banned {user!r}: {reason}")


@admin.command()
def paint(context, colour=Argument(str, converter=colours)):
    """paint the channel"""
    print(f"painted in {colour}")


commands.hooks.subscribe(post=lambda context: print(f"-- done ({context})"))


async def main():
    commands.load()
    pprint(commands.find("admin ban"))

    await commands.execute('greet "Ada Lovelace" 2', "console")
    await commands.execute("hi Grace", "console")
    await commands.execute("admin ban <@!123456789012345678> spamming\\ links", "console")
    await commands.execute("admin paint gren", "console")
    await commands.execute_options("admin ban", {"user": "123456789012345678"}, "interaction")

    # Faults are collected (deferred) and rendered together on flush.
    await commands.execute("gret Ada", "console")
    await commands.execute("admin ban", "console")
    await commands.execute('greet "unclosed', "console")
    commands.flush()


if __name__ == '__main__':
    asyncio.run(main())
