from ixfeed.main import run

run()
