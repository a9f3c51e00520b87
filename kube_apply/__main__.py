"""Run the kube-apply command line tool with `python -m kube_apply`."""

from kube_apply.tool.kube_apply import main

if __name__ == "__main__":
    main()
