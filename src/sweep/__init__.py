"""sweep - run one task on many hosts over SSH, without agents.

Quick Start:
    from sweep import Inventory, ExecTask, run_task

    inventory = Inventory.from_toml(open("inventory.toml").read())
    hosts = inventory.get_hosts_by_tag_query("web & !staging")
    report = run_task(hosts, ExecTask("uptime"), parallel=True)
    print(report.to_json())
"""

__version__ = "0.1.0"

from sweep.executor import TaskRunner, run_task
from sweep.inventory import Inventory, load_inventory
from sweep.tag_query import TagQuery, eval_tag_query
from sweep.tasks import DownloadTask, ExecTask, InfoTask, ModuleTask, Task, UploadTask
from sweep.types import ExecutionReport, Host, HostId, HostOutcome, HostTag

__all__ = [
    "__version__",
    "DownloadTask",
    "ExecTask",
    "ExecutionReport",
    "Host",
    "HostId",
    "HostOutcome",
    "HostTag",
    "InfoTask",
    "Inventory",
    "ModuleTask",
    "TagQuery",
    "Task",
    "TaskRunner",
    "UploadTask",
    "eval_tag_query",
    "load_inventory",
    "run_task",
]
