import sys
import os.path as op
from natsort import natsorted
from optparse import OptionParser as OptionP, SUPPRESS_HELP


FOOTNOTE = "switcherror: switch error rates of phased genotypes\n"


def eprint(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


class ActionDispatcher(object):
    """
    Lists the ACTIONs of a script run directly and runs the one named by
    the first command line argument.
    """

    def __init__(self, actions):
        self.actions = actions
        if not actions:
            actions = [(None, None)]
        self.valid_actions, self.action_helps = zip(*actions)

    def print_help(self):
        args = splitall(sys.argv[0])[-3:]
        args[-1] = args[-1].replace(".py", "") + " ACTION"
        help = 'Usage:\n    python -m %s\n\n\n' % ('.'.join(args))
        help += 'Available ACTIONs:\n'
        max_action_len = max(len(action) for action, ah in self.actions)
        for action, action_help in self.actions:
            action = action.rjust(max_action_len + 4)
            help += " | ".join((action, action_help[0].upper() +
                                action_help[1:])) + '\n'
        help += "\n" + FOOTNOTE
        sys.stderr.write(help)
        sys.exit(1)

    def dispatch(self, globals):
        from difflib import get_close_matches
        meta = 'ACTION'
        if len(sys.argv) == 1:
            self.print_help()
        action = sys.argv[1]
        if action not in self.valid_actions:
            eprint("[error] %s not a valid %s\n" % (action, meta))
            alt = get_close_matches(action, self.valid_actions)
            eprint("Did you mean one of these?\n\t%s\n" % (", ".join(alt)))
            self.print_help()
        globals[action](sys.argv[2:])


class OptionParser(OptionP):
    def __init__(self, doc):
        OptionP.__init__(self, doc, epilog=FOOTNOTE)

    def parse_args(self, args=None):
        dests = set()
        ol = []
        for g in [self] + self.option_groups:
            ol += g.option_list
        for o in ol:
            if o.dest in dests:
                continue
            self.add_help_from_choices(o)
            dests.add(o.dest)
        return OptionP.parse_args(self, args)

    def add_help_from_choices(self, o):
        if o.help == SUPPRESS_HELP:
            return

        default_tag = "%default"
        assert o.help, "Option %s do not have help string" % o
        help_pf = o.help[:1].upper() + o.help[1:]
        if "[" in help_pf:
            help_pf = help_pf.rsplit("[", 1)[0]
        help_pf = help_pf.strip()

        if o.type == "choice":
            if o.default is None:
                default_tag = "guess"
            ctext = "|".join(natsorted(str(x) for x in o.choices))
            if len(ctext) > 100:
                ctext = ctext[:100] + " ... "
            choice_text = "must be one of %s" % ctext
            o.help = "%s, %s [default: %s]" % (help_pf, choice_text, default_tag)
        else:
            o.help = help_pf
            if o.default is None:
                default_tag = "disabled"
            if o.get_opt_string() not in ("--help", "--version") \
                    and o.action not in ("store_false", "store_true"):
                o.help += " [default: %s]" % default_tag

    def add_logging_opts(self, logfile=None):
        self.add_option("--logfile", default=logfile,
                        help="specify the file saving running info, "
                             "stderr if not set")
        self.add_option("--loglevel", default="WARNING",
                        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
                        help="lowest level of messages to log")


def splitall(path):
    allparts = []
    while True:
        path, p1 = op.split(path)
        if not p1:
            break
        allparts.append(p1)
    allparts = allparts[::-1]
    return allparts
