#!/usr/bin/env python3
# @name Hello World
# @description Simple test script that greets you
# @param name:string:required Your name
# @param excited:boolean:optional Add excitement to the greeting
# @context terminal
# @category testing

import sys
import time
from datetime import datetime

if len(sys.argv) < 2:
    print("Error: Name is required", file=sys.stderr)
    sys.exit(1)

name = sys.argv[1]
excited = len(sys.argv) > 2 and sys.argv[2] == "true"

print(f"Hello, {name}!!!" if excited else f"Hello, {name}", flush=True)
print(f"Script executed at: {datetime.now():%Y-%m-%d %H:%M:%S}", flush=True)

print("Processing...", flush=True)
time.sleep(1)
print("Done!")
