"""Stand-in for a coding-assistant CLI speaking newline-delimited JSON.

Run as a subprocess by the adapter tests. Behaviour is picked by the
task prompt:

    crash       exit with code 3 without answering
    exit0       exit with code 0 without answering
    silent      never answer
    noid        answer without echoing the id
    garbage     write junk lines, then answer
    shell       answer with proposed shell commands
    env         answer with CLAUDE_CODE_SESSION_ID
    log         write a line to stderr, then answer
    anything else: answer "done: <prompt>"

Pass --ignore-sigterm to make the process ignore SIGTERM.
"""

import json
import os
import signal
import sys


def reply(task, data, with_id=True):
    message = {"type": "response", "data": data}
    if with_id:
        message["id"] = task.get("id")
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def main():
    if "--ignore-sigterm" in sys.argv:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    while True:
        line = sys.stdin.readline()
        if not line:
            return
        task = json.loads(line)
        prompt = task.get("prompt") or ""

        if prompt == "crash":
            sys.stderr.write("fatal: something broke\n")
            sys.stderr.flush()
            sys.exit(3)
        if prompt == "exit0":
            sys.exit(0)
        if prompt == "silent":
            continue
        if prompt == "noid":
            reply(task, {"success": True, "message": "no id"}, with_id=False)
            continue
        if prompt == "garbage":
            sys.stdout.write("not json at all\n")
            sys.stdout.write(json.dumps({"type": "progress", "pct": 50}) + "\n")
            sys.stdout.write(json.dumps({"type": "response", "id": "unknown", "data": {}}) + "\n")
            sys.stdout.flush()
            reply(task, {"success": True, "message": "after garbage"})
            continue
        if prompt == "shell":
            reply(
                task,
                {
                    "success": True,
                    "message": "proposing",
                    "shellCommands": ["git status", "rm -rf /", "curl https://x"],
                },
            )
            continue
        if prompt == "env":
            reply(task, {"success": True, "message": os.environ.get("CLAUDE_CODE_SESSION_ID", "")})
            continue
        if prompt == "log":
            sys.stderr.write("working on it\n")
            sys.stderr.flush()

        reply(
            task,
            {
                "success": True,
                "message": f"done: {prompt}",
                "action": task.get("action"),
                "workingDir": task.get("workingDir"),
            },
        )


if __name__ == "__main__":
    main()
