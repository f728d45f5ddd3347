"""
Compare estimated phase against true phase and report switch error rates
"""
import sys
import logging
import numpy as np
import pandas as pd

from pathlib import Path
from contextlib import ExitStack
from optparse import OptionGroup

from .base import (AMBIGUOUS, AMBIGUOUS_BUCKET, ANC_LABELS,
                   InputError, ConsistencyError,
                   PhgenoReader, AncestryReader, ParseConfig,
                   ancestry_bucket, ancestry_path, make_options, open_file,
                   read_omit_list, read_trio_pairs)
from .tracker import (PhaseTracker, MISSING_ESTIMATE, MATCH, SWITCH_ERROR,
                      is_triple_het, trio_partner)
from switcherror.apps.base import OptionParser, ActionDispatcher, eprint

# exit status of a process killed by SIGABRT
ABORT_EXIT_CODE = 134
MAX_OPEN_ANC_FILES = 1000


def rate(num, denom):
    """
    num/denom as a float, nan when denom is 0
    """
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.true_divide(num, denom)


class SwitchStats(object):
    """
    Counters for the whole run, per local ancestry bucket and per sample
    """
    def __init__(self, num_samples):
        self.num_samples = num_samples
        self.num_markers = 0
        self.num_switches = 0
        self.num_het = 0
        self.num_missing = 0
        self.num_trio_skipped = 0
        # homozy POP1, het, homozy POP2, ambiguous
        self.anc_switches = np.zeros(4, dtype=int)
        self.anc_het = np.zeros(4, dtype=int)
        self.sample_switches = np.zeros(num_samples, dtype=int)
        self.sample_het = np.zeros(num_samples, dtype=int)
        self.sample_missing = np.zeros(num_samples, dtype=int)

    def add(self, sample, result, bucket=AMBIGUOUS_BUCKET):
        if result == MISSING_ESTIMATE:
            self.num_missing += 1
            self.sample_missing[sample] += 1
        elif result in (MATCH, SWITCH_ERROR):
            self.num_het += 1
            self.anc_het[bucket] += 1
            self.sample_het[sample] += 1
            if result == SWITCH_ERROR:
                self.num_switches += 1
                self.anc_switches[bucket] += 1
                self.sample_switches[sample] += 1

    def switch_rate(self):
        return rate(self.num_switches, self.num_het)

    def missing_rate(self):
        return rate(self.num_missing, self.num_samples * self.num_markers)


def compare_phase(options, est_handle, true_handle, anc_readers=None,
                  stats=None, tracker=None):
    """
    Walk both phgeno streams one marker at a time and classify every sample.
    Returns the SwitchStats and PhaseTracker of the run.
    """
    n = options.num_samples
    if options.trio_succession and n % 2:
        raise InputError('trio parents in succession need an even number '
                         f'of samples, got {n}')
    if anc_readers is not None and len(anc_readers) != n:
        raise InputError(f'{len(anc_readers)} local ancestry files for '
                         f'{n} samples')
    est_reader = PhgenoReader(est_handle, n, options.skip, options.omit)
    true_reader = PhgenoReader(true_handle, n)
    stats = stats or SwitchStats(n)
    tracker = tracker or PhaseTracker(n, options.true_missing,
                                      options.est_missing)
    prev_anc = [AMBIGUOUS] * n
    buckets = [AMBIGUOUS_BUCKET] * n

    for est_calls in est_reader:
        true_calls = true_reader.read_marker()
        if true_calls is None:
            raise ConsistencyError(
                f'{true_reader.name} ends after {stats.num_markers} markers '
                f'but {est_reader.name} continues')
        locus = stats.num_markers
        stats.num_markers += 1

        if anc_readers is not None:
            for samp, reader in enumerate(anc_readers):
                cur = reader.next_class()
                buckets[samp] = ancestry_bucket(prev_anc[samp], cur)
                prev_anc[samp] = cur

        skip_partner = False
        for samp in range(n):
            if skip_partner:
                skip_partner = False
                continue
            est = est_calls[2*samp: 2*samp+2]
            true = true_calls[2*samp: 2*samp+2]

            partner = trio_partner(samp, options.trio_partners,
                                   options.trio_succession)
            if partner is not None:
                partner_true = true_calls[2*partner: 2*partner+2]
                tracker.check_truth(samp, true, locus)
                tracker.check_truth(partner, partner_true, locus)
                if is_triple_het(true, partner_true, options.true_missing):
                    stats.num_trio_skipped += 1
                    if options.trio_succession:
                        stats.num_trio_skipped += 1
                        skip_partner = True
                    continue

            result = tracker.observe(samp, est, true, locus)
            stats.add(samp, result, buckets[samp])
            if result == SWITCH_ERROR and options.verbose:
                state = tracker[samp]
                eprint(samp, state.num_switches - 1, locus,
                       state.last_block_length)

    if true_handle.readline().strip():
        logging.warning(f'{true_reader.name} has more markers than '
                        f'{est_reader.name}; extra lines ignored')

    if options.verbose and stats.num_markers:
        last_locus = stats.num_markers - 1
        for state in tracker.samples:
            eprint(state.sample, state.num_switches, last_locus,
                   state.block_length(last_locus))
    logging.debug(f'{stats.num_markers} markers compared, '
                  f'{stats.num_trio_skipped} triple het sites skipped')
    return stats, tracker


def run_switch(options):
    """
    open the phgeno files (and local ancestry files if requested) and run the
    comparison; every file is closed on return
    """
    with ExitStack() as stack:
        est_handle = stack.enter_context(open_file(options.est_file))
        true_handle = stack.enter_context(open_file(options.true_file))
        anc_readers = None
        if options.anc_prefix is not None:
            if options.num_samples > MAX_OPEN_ANC_FILES:
                msg = ('limitations on the number of open files may prevent '
                       'opening all HAPMIX output files; try raising '
                       '`ulimit -n` if this fails')
                logging.warning(msg)
                eprint(f'Warning: {msg}')
            anc_readers = []
            for samp in range(options.num_samples):
                fn = ancestry_path(options.anc_prefix, samp, options.chrom)
                anc_readers.append(AncestryReader(
                    stack.enter_context(open_file(fn)), fn,
                    options.anc_confidence, options.anc_tolerance))
            logging.debug(f'opened {len(anc_readers)} local ancestry files')
        return compare_phase(options, est_handle, true_handle, anc_readers)


def format_report(stats, use_ancestry=False):
    lines = ['switch %d / %d = %f' % (stats.num_switches, stats.num_het,
                                      stats.switch_rate())]
    if stats.num_missing > 0:
        lines.append('missing %d / %d = %f' % (
            stats.num_missing, stats.num_samples * stats.num_markers,
            stats.missing_rate()))
    if use_ancestry:
        for label, n_sw, n_het in zip(ANC_LABELS, stats.anc_switches,
                                      stats.anc_het):
            lines.append('%-13s %d / %d = %f' % (label, n_sw, n_het,
                                                 rate(n_sw, n_het)))
    return lines


def sample_table(stats, tracker):
    """
    one row per sample: switch errors, het sites, missing estimates and the
    length of the final switch-free block
    """
    last_locus = max(stats.num_markers - 1, 0)
    df = pd.DataFrame({
        'sample': range(stats.num_samples),
        'switches': stats.sample_switches,
        'het_sites': stats.sample_het,
        'missing': stats.sample_missing})
    df['switch_rate'] = rate(df['switches'].values, df['het_sites'].values)
    df['last_switch'] = pd.array([s.last_switch for s in tracker.samples],
                                 dtype='Int64')
    df['final_block'] = [s.block_length(last_locus) for s in tracker.samples]
    return df


def switch(args):
    """
    %prog switch [options] num_samples estimated.phgeno true.phgeno

    Count switch errors of the estimated phase relative to the true phase
    """
    p = OptionParser(switch.__doc__)
    p.add_option('-s', '--skip', default=0, type='int',
                 help='number of samples to skip in the estimated file')
    p.add_option('-o', '--omit',
                 help=('file listing sample numbers (from 0, after any '
                       'skipped samples) to omit from the estimated file'))
    p.add_option('-v', '--verbose', default=False, action='store_true',
                 help='print switch point information to stderr')
    p.add_option('--configfile',
                 help='config file with allele codes and ancestry cutoffs')
    p.add_option('--sample_table',
                 help='write per-sample switch counts to this tsv file')
    q = OptionGroup(p, 'trio options')
    p.add_option_group(q)
    q.add_option('-t', '--trio_succession', default=False,
                 action='store_true',
                 help=('trio parents appear in succession, transmitted '
                       'haplotype first; omits triple het sites'))
    q.add_option('-p', '--trio_pairs',
                 help=('file giving pairs of trio parents; omits triple het '
                       'sites'))
    r = OptionGroup(p, 'local ancestry options')
    p.add_option_group(r)
    r.add_option('-l', '--local_anc',
                 help=('prefix of HAPMIX local ancestry files, named '
                       '<prefix>.<sample>.<chrom>'))
    r.add_option('-c', '--chrom', type='int',
                 help='chromosome number suffix of local ancestry files')
    p.add_logging_opts()
    opts, args = p.parse_args(args)

    if len(args) != 3:
        sys.exit(not p.print_help())

    num_samples, est_file, true_file = args
    try:
        num_samples = int(num_samples)
    except ValueError:
        num_samples = 0
    if num_samples <= 0:
        eprint(f'ERROR: number of samples must be a positive integer, '
               f'got `{args[0]}`')
        sys.exit(1)
    if opts.skip < 0:
        eprint('ERROR: number of samples to skip cannot be negative')
        sys.exit(1)
    if opts.trio_succession and opts.trio_pairs:
        eprint('ERROR: -t and -p are alternative ways to give trio parents, '
               'use only one')
        sys.exit(1)
    if opts.local_anc and opts.chrom is None:
        eprint('ERROR: local ancestry (-l) needs the chromosome number (-c)')
        sys.exit(1)
    if opts.sample_table and Path(opts.sample_table).exists():
        eprint(f'ERROR: The output file `{opts.sample_table}` already exists')
        sys.exit(1)

    logging.basicConfig(filename=opts.logfile,
                        level=getattr(logging, opts.loglevel),
                        format="%(asctime)s:%(levelname)s:%(message)s")

    try:
        config = ParseConfig(opts.configfile)
        omit = read_omit_list(opts.omit) if opts.omit else ()
        partners = read_trio_pairs(opts.trio_pairs, num_samples) \
            if opts.trio_pairs else None
        options = make_options(
            num_samples, est_file, true_file, skip=opts.skip,
            trio_succession=opts.trio_succession, trio_partners=partners,
            omit=omit, verbose=opts.verbose, anc_prefix=opts.local_anc,
            chrom=opts.chrom, config=config)
        logging.debug(f'Parameters: {options._asdict()}')
        stats, tracker = run_switch(options)
    except InputError as e:
        logging.error(e)
        eprint(f'Error: {e}')
        sys.exit(1)
    except ConsistencyError as e:
        logging.critical(e)
        eprint(f'Error: {e}')
        sys.exit(ABORT_EXIT_CODE)

    for line in format_report(stats, opts.local_anc is not None):
        print(line)

    if opts.sample_table:
        sample_table(stats, tracker).to_csv(opts.sample_table, sep='\t',
                                            index=False, na_rep='nan')
        logging.debug(f'per-sample table written to {opts.sample_table}')


def switch_main():
    switch(sys.argv[1:])


def main():
    actions = (
        ('switch', 'count switch errors between estimated and true phase'),
            )
    p = ActionDispatcher(actions)
    p.dispatch(globals())


if __name__ == '__main__':
    main()
