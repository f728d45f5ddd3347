"""
Track the homolog orientation of each sample and detect switch errors
"""
import logging

from .base import ConsistencyError
from switcherror.apps.base import eprint

NORMAL, INVERTED = 0, 1

MISSING_TRUTH = 'missing-truth'
MISSING_ESTIMATE = 'missing-estimate'
HOMOZYGOUS = 'homozygous'
ORIENTATION_ESTABLISHED = 'orientation-established'
MATCH = 'match'
SWITCH_ERROR = 'switch-error'


def is_het(alleles, missing='9'):
    return missing not in alleles and alleles[0] != alleles[1]


def is_triple_het(true_alleles, partner_alleles, missing='9'):
    """
    Both parents het and their transmitted (first) alleles differ, so the
    child is het too and the pedigree-based phase of the site is ambiguous.
    """
    return (is_het(true_alleles, missing) and
            is_het(partner_alleles, missing) and
            true_alleles[0] != partner_alleles[0])


def trio_partner(sample, partners=None, positional=False):
    """
    index of the other parent to check against, None if the sample is not
    checked
    """
    if positional:
        return sample + 1 if sample % 2 == 0 else None
    if partners is not None:
        return partners[sample]
    return None


class SamplePhase(object):
    """
    which estimated haplotype carries true haplotype 0 for one sample
    """
    def __init__(self, sample):
        self.sample = sample
        self.orientation = None
        self.last_switch = None
        self.num_switches = 0
        self.last_block_length = None

    def block_length(self, locus):
        return locus - (self.last_switch or 0)

    def flip(self, locus):
        self.orientation = 1 - self.orientation
        self.last_block_length = self.block_length(locus)
        self.last_switch = locus
        self.num_switches += 1


class PhaseTracker(object):
    """
    Classify one (estimated, true) allele pair per sample per marker.
    Orientation is set at a sample's first fully observed het site and flips
    at every switch error after that.
    """
    def __init__(self, num_samples, true_missing='9', est_missing='?'):
        self.samples = [SamplePhase(i) for i in range(num_samples)]
        self.true_missing = true_missing
        self.est_missing = est_missing
        self.true_alphabet = ('0', '1', true_missing)
        self.warned_half_missing = False

    def __getitem__(self, sample):
        return self.samples[sample]

    def __len__(self):
        return len(self.samples)

    def _inconsistent(self, sample, locus, est, true):
        return ConsistencyError(
            f"At locus {locus}, samp {sample}: true: {true[0]}/{true[1]} "
            f"est: {est[0]}/{est[1]}")

    def check_truth(self, sample, true, locus):
        for a in true:
            if a not in self.true_alphabet:
                raise ConsistencyError(
                    f"At locus {locus}, samp {sample}: unexpected allele "
                    f"'{a}' in truth set")

    def observe(self, sample, est, true, locus):
        self.check_truth(sample, true, locus)

        if self.true_missing in true:
            if true[0] != true[1] and not self.warned_half_missing:
                msg = "missing data for only one haplotype in truth set"
                logging.warning(msg)
                eprint(f"Warning: {msg}")
                self.warned_half_missing = True
            return MISSING_TRUTH

        # phaser output has its own missing code
        if self.true_missing in est:
            raise self._inconsistent(sample, locus, est, true)

        if self.est_missing in est:
            if est[0] != est[1]:
                raise self._inconsistent(sample, locus, est, true)
            return MISSING_ESTIMATE

        if true[0] == true[1]:
            if est[0] != est[1] or est[0] != true[0]:
                raise self._inconsistent(sample, locus, est, true)
            return HOMOZYGOUS

        state = self.samples[sample]
        if state.orientation is None:
            # the first het site only fixes the homolog correspondence
            if est[0] == true[0] and est[1] == true[1]:
                state.orientation = NORMAL
            elif est[0] == true[1] and est[1] == true[0]:
                state.orientation = INVERTED
            else:
                raise self._inconsistent(sample, locus, est, true)
            logging.debug(f'samp {sample}: orientation {state.orientation} '
                          f'set at locus {locus}')
            return ORIENTATION_ESTABLISHED

        h0 = state.orientation
        h1 = 1 - h0
        if est[h0] == true[0] and est[h1] == true[1]:
            return MATCH
        if est[h0] == true[1] and est[h1] == true[0]:
            state.flip(locus)
            return SWITCH_ERROR
        raise self._inconsistent(sample, locus, est, true)
