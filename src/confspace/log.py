import logging


### CLASSES ###
class c:
  """Terminal colors class"""

  _ = "\033[0m"  # reset terminal
  p = "\033[38;5;204m"  # pink
  b = "\033[38;5;39m"  # blue
  g = "\033[38;5;47m"  # green
  grey = "\033[90m"  # grey
  r = "\033[38;5;1m"  # red
  br = "\x1b[31;1m"  # boldred
  y = "\033[38;5;226m"  # yellow


class CompilerFormatter(logging.Formatter):
  """Formatter for the ``confspace`` logger.

  NOTE:
    ``[+] logging.DEBUG``: per-molecule and per-position detail of a compile

    ``[*] logging.INFO``: start of each compiler stage

    ``[-] logging.WARNING``: non-fatal compiler diagnostics

    ``[!] logging.ERROR``: a compile failed, the report holds the error
  """

  log_format_detailed = f"{c.grey}%(asctime)s{c._} %(message)s {c.p}(%(threadName)s %(filename)s:%(lineno)d){c._}"
  log_format_basic = "%(message)s"

  FORMATS = {
    logging.DEBUG: f"{c.g}[+]{c._} {log_format_basic}",
    logging.INFO: f"{c.b}[*]{c._} {log_format_basic}",
    logging.WARNING: f"{c.y}[-]{c._} {log_format_detailed}",
    logging.ERROR: f"{c.r}[!]{c._} {log_format_detailed}",
    logging.CRITICAL: f"{c.br}[!]{c._} {log_format_detailed}",
  }

  def format(self, record):
    formatter = logging.Formatter(self.FORMATS.get(record.levelno, self.log_format_basic))
    return formatter.format(record)


### FUNCTIONS ###
def set_level(level: int):
  """Change the verbosity of the ``confspace`` logger and its console handler.

  Parameters:
    level: A ``logging`` level such as ``logging.INFO``
  """
  logger.setLevel(level)
  for handler in logger.handlers:
    handler.setLevel(level)


logger = logging.getLogger("confspace")
logger.setLevel(logging.DEBUG)

# only attach the console handler once, even if the module is reloaded
if not any(getattr(h, "_confspace", False) for h in logger.handlers):
  ch = logging.StreamHandler()
  ch.setLevel(logging.DEBUG)
  ch.setFormatter(CompilerFormatter())
  ch._confspace = True
  logger.addHandler(ch)
