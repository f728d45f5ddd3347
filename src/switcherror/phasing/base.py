"""
Base utilities for switch error calculation
"""
import logging
from collections import namedtuple
from configparser import ConfigParser

import pandas as pd

# local ancestry classes, as HAPMIX reports them
HOMOZY_POP1, HETEROZYGOUS, HOMOZY_POP2, AMBIGUOUS = 0, 1, 2, -1
# stratification bucket for sites not inside one confident ancestry class
AMBIGUOUS_BUCKET = 3
ANC_LABELS = ('Homozy_POP1:', 'Heterozygous:', 'Homozy_POP2:', 'Ambiguous:')

CONFIG_DEFAULTS = {
    'Alleles': {'true_missing': '9', 'est_missing': '?'},
    'Ancestry': {'confidence': '0.9', 'sum_tolerance': '0.003'},
}


class SwitchError(Exception):
    pass


class InputError(SwitchError):
    """
    unusable input: bad arguments, unopenable or malformed files
    """


class ConsistencyError(SwitchError):
    """
    the estimated and true streams cannot describe the same samples/markers
    """


SwitchOptions = namedtuple('SwitchOptions', [
    'num_samples', 'est_file', 'true_file', 'skip', 'trio_succession',
    'trio_partners', 'omit', 'verbose', 'anc_prefix', 'chrom',
    'true_missing', 'est_missing', 'anc_confidence', 'anc_tolerance'])


def make_options(num_samples, est_file=None, true_file=None, skip=0,
                 trio_succession=False, trio_partners=None, omit=(),
                 verbose=False, anc_prefix=None, chrom=None, config=None):
    """
    freeze the command line and config file values for one run
    """
    config = config or ParseConfig()
    return SwitchOptions(
        num_samples, est_file, true_file, skip, trio_succession,
        None if trio_partners is None else tuple(trio_partners),
        frozenset(omit), verbose, anc_prefix, chrom,
        config.true_missing, config.est_missing,
        config.anc_confidence, config.anc_tolerance)


class ParseConfig(object):
    """
    Parse the configure file using configparser
    """
    def __init__(self, configfile=None):
        config = ConfigParser()
        config.read_dict(CONFIG_DEFAULTS)
        if configfile is not None and not config.read(configfile):
            raise InputError(f"config file {configfile} does not exist")
        self.true_missing = config.get('Alleles', 'true_missing')
        self.est_missing = config.get('Alleles', 'est_missing')
        try:
            self.anc_confidence = config.getfloat('Ancestry', 'confidence')
            self.anc_tolerance = config.getfloat('Ancestry', 'sum_tolerance')
        except ValueError as e:
            raise InputError(f"bad value in config file: {e}")
        for code in (self.true_missing, self.est_missing):
            if len(code) != 1 or code in '01':
                raise InputError(
                    f"missing data code must be one character other than "
                    f"0 or 1, got '{code}'")
        if self.true_missing == self.est_missing:
            raise InputError(
                f"true and estimated files need distinct missing data "
                f"codes, both are '{self.true_missing}'")


def open_file(fn):
    try:
        return open(fn)
    except OSError as e:
        raise InputError(f"Couldn't open {fn}: {e.strerror}")


class PhgenoReader(object):
    """
    Read markers from a phgeno file: one line per marker, one character per
    haplotype, two haplotypes per sample.

    The first `skip` samples of each line are dropped, then any sample whose
    index (counted after the skipped ones) is in `omit`. Characters past the
    2*num_samples wanted calls are ignored.
    """
    def __init__(self, handle, num_samples, skip=0, omit=(), name=None):
        self.handle = handle
        self.num_samples = num_samples
        self.skip = skip
        self.omit = frozenset(omit)
        self.name = name or getattr(handle, 'name', 'phgeno')
        self.line_num = 0

    def read_marker(self):
        """
        return the allele calls of the next marker as a string, None at EOF
        """
        line = self.handle.readline()
        if not line:
            return None
        self.line_num += 1
        line = line.rstrip('\r\n')
        n_calls = 2 * self.num_samples
        offset = 2 * self.skip
        if len(line) < offset:
            raise ConsistencyError(
                f"{self.name} line {self.line_num}: only {len(line)} "
                f"haplotypes, cannot skip {self.skip} samples")
        if not self.omit:
            calls = line[offset:offset+n_calls]
        else:
            kept = []
            for hap, c in enumerate(line[offset:]):
                if len(kept) == n_calls:
                    break
                if hap // 2 in self.omit:
                    continue
                kept.append(c)
            calls = ''.join(kept)
        if len(calls) != n_calls:
            raise ConsistencyError(
                f"{self.name} line {self.line_num}: expected {n_calls} "
                f"haplotypes, found {len(calls)}")
        return calls

    def __iter__(self):
        while True:
            calls = self.read_marker()
            if calls is None:
                return
            yield calls


def ancestry_path(prefix, sample, chrom):
    return f'{prefix}.{sample}.{chrom}'


def classify_ancestry(p_pop1, p_het, p_pop2, confidence=0.9):
    if p_pop1 > confidence:
        return HOMOZY_POP1
    elif p_het > confidence:
        return HETEROZYGOUS
    elif p_pop2 > confidence:
        return HOMOZY_POP2
    else:
        return AMBIGUOUS


def ancestry_bucket(prev_class, cur_class):
    """
    a site is stratified only when it and the previous marker fall in the
    same confident ancestry class
    """
    if cur_class == prev_class and cur_class != AMBIGUOUS:
        return cur_class
    return AMBIGUOUS_BUCKET


class AncestryReader(object):
    """
    Read one HAPMIX local ancestry record per marker:
    <position> <P(homozygous POP1)> <P(heterozygous)> <P(homozygous POP2)>
    """
    def __init__(self, handle, name=None, confidence=0.9, tolerance=0.003):
        self.handle = handle
        self.name = name or getattr(handle, 'name', 'ancestry')
        self.confidence = confidence
        self.tolerance = tolerance
        self.line_num = 0

    def next_record(self):
        line = self.handle.readline()
        self.line_num += 1
        fields = line.split()
        if len(fields) < 4:
            raise InputError(
                f"malformed line {self.line_num} in local ancestry file "
                f"{self.name}")
        try:
            pos = int(fields[0])
            probs = tuple(float(x) for x in fields[1:4])
        except ValueError:
            raise InputError(
                f"malformed line {self.line_num} in local ancestry file "
                f"{self.name}")
        total = sum(probs)
        if abs(total - 1) > self.tolerance:
            raise ConsistencyError(
                f"{self.name} line {self.line_num}: ancestry probabilities "
                f"sum to {total:.4f}")
        return (pos,) + probs

    def next_class(self):
        __, p_pop1, p_het, p_pop2 = self.next_record()
        return classify_ancestry(p_pop1, p_het, p_pop2, self.confidence)


def read_omit_list(fn):
    """
    sample indices to drop from the estimated file, whitespace separated
    """
    omit = set()
    with open_file(fn) as f:
        for token in f.read().split():
            try:
                idx = int(token)
            except ValueError:
                raise InputError(f"{fn}: '{token}' is not a sample index")
            if idx < 0:
                raise InputError(f"{fn}: negative sample index {idx}")
            omit.add(idx)
    logging.debug(f'omitting {len(omit)} samples from the estimated file')
    return omit


def read_trio_pairs(fn, num_samples):
    """
    return the partner index of every sample, read from a file listing one
    pair of trio parents per line
    """
    with open_file(fn) as f:
        try:
            df = pd.read_csv(f, sep=r'\s+', header=None, dtype=int)
        except pd.errors.EmptyDataError:
            df = pd.DataFrame({0: [], 1: []}, dtype=int)
        except (ValueError, pd.errors.ParserError):
            df = None
    if df is None or df.shape[1] != 2:
        raise InputError(f"{fn}: expected two sample indices per line")
    df.columns = ['id1', 'id2']
    partners = [None] * num_samples
    for id1, id2 in zip(df['id1'], df['id2']):
        id1, id2 = int(id1), int(id2)
        if id1 == id2 or not (0 <= id1 < num_samples and
                              0 <= id2 < num_samples):
            raise InputError(f"{fn}: invalid parent pair {id1} {id2}")
        if partners[id1] is not None or partners[id2] is not None:
            raise InputError(f"{fn}: sample in more than one pair: "
                             f"{id1} {id2}")
        partners[id1] = id2
        partners[id2] = id1
    if df.shape[0] * 2 != num_samples:
        raise InputError(f"{fn}: {df.shape[0]} parent pairs do not cover "
                         f"{num_samples} samples")
    logging.debug(f'read {df.shape[0]} trio parent pairs from {fn}')
    return partners
