import nonebot
from nonebot.adapters.discord import Adapter as DiscordAdapter

nonebot.init()

driver = nonebot.get_driver()
driver.register_adapter(DiscordAdapter)

nonebot.load_plugin("rolecount.plugin")

if __name__ == "__main__":
    nonebot.run()
