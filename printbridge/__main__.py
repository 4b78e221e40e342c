from printbridge.main import run

run()
