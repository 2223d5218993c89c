STATE_DIR_NAME = ".team_planner"
CONFIG_FILE = "config.yaml"
CONTENTS_FILE = "contents.yaml"
TASKS_FILE = "tasks.yaml"
REVIEWS_FILE = "task_reviews.yaml"
TASK_LOGS_FILE = "task_logs.jsonl"
LOCK_FILE = "records.lock"

DAYS_PER_WEEK = 7

TABLE_CONTENTS = "contents"
TABLE_TASKS = "tasks"
TABLE_TASK_REVIEWS = "task_reviews"
WATCHED_TABLES = (TABLE_CONTENTS, TABLE_TASKS, TABLE_TASK_REVIEWS)

DEFAULT_MONTHS_BACK = 3
DEFAULT_MONTHS_AHEAD = 3
EXPANSION_SLACK_MONTHS = 1

STATUS_DONE = "DONE"
ASSIGNEE_TYPE_TEAM = "TEAM"
ASSIGNEE_TYPE_INDIVIDUAL = "INDIVIDUAL"

LOG_LEVEL_ENV_VAR = "TEAM_PLANNER_LOG_LEVEL"
