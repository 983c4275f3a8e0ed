# CreaseLive Gunicorn Configuration
#
# IMPORTANT: live matches are held in memory (MATCH_INSTANCES dict) and the
# archive worker is a thread inside the process. Multiple workers would each
# get their own copy of a match, so scoring and spectating diverge.
# Must use exactly 1 worker.

bind = "127.0.0.1:5000"
workers = 1
threads = 4
timeout = 120
