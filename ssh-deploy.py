#!/usr/bin/env python3
"""
SSH deployment tool.

Verbs:
- push     one deployment cycle: pre-command, upload, post-command
- monitor  redeploy whenever the trigger file is written; interactive remote shell
- run      one remote command, exit status mirrored locally
- shell    line-oriented interactive remote shell
"""

from sshdeploy.main import main

if __name__ == "__main__":
    main()
