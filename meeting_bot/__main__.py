from meeting_bot.main import run

run()
