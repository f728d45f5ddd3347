import io
import pytest
import numpy as np
import pandas as pd

from switcherror.phasing.base import (ConsistencyError, InputError,
                                      make_options)
from switcherror.phasing.compare import (
    ABORT_EXIT_CODE, SwitchStats, compare_phase, format_report, rate,
    main, run_switch, sample_table, switch)


def compare(est_lines, true_lines, num_samples, **kwargs):
    options = make_options(num_samples, **kwargs)
    est = io.StringIO(''.join(x + '\n' for x in est_lines))
    true = io.StringIO(''.join(x + '\n' for x in true_lines))
    return compare_phase(options, est, true)


def write_phgeno(path, lines):
    path.write_text(''.join(x + '\n' for x in lines))
    return str(path)


def relabel(lines):
    return [x.translate(str.maketrans('01', '10')) for x in lines]


def test_rate():
    assert rate(1, 4) == 0.25
    assert np.isnan(rate(0, 0))
    assert '%f' % rate(0, 0) == 'nan'


def test_homozygous_only_gives_nan():
    stats, __ = compare(['0011'], ['0011'], 2)
    assert (stats.num_het, stats.num_switches) == (0, 0)
    assert format_report(stats) == ['switch 0 / 0 = nan']


def test_single_switch():
    stats, tracker = compare(['01', '10'], ['01', '01'], 1)
    assert stats.num_markers == 2
    assert format_report(stats) == ['switch 1 / 1 = 1.000000']
    assert tracker[0].last_switch == 1


def test_counts_over_samples():
    est = ['0110', '0101', '1001', '1100', '0101']
    true = ['0101', '0101', '0101', '1100', '0101']
    stats, tracker = compare(est, true, 2)
    # sample 0: set, match, switch, hom, switch
    # sample 1: set, switch, match, hom, match
    assert stats.num_het == 6
    assert stats.num_switches == 3
    assert list(stats.sample_switches) == [2, 1]
    assert list(stats.sample_het) == [3, 3]
    assert format_report(stats) == ['switch 3 / 6 = 0.500000']


def test_missing_estimates():
    stats, __ = compare(['??01', '01??', '1001'], ['0101', '0101', '0101'],
                        2)
    assert stats.num_missing == 2
    assert list(stats.sample_missing) == [1, 1]
    assert format_report(stats) == ['switch 1 / 2 = 0.500000',
                                    'missing 2 / 6 = 0.333333']


def test_relabel_symmetry():
    est = ['0110', '0101', '1001', '1100', '1010', '??00']
    true = ['0101', '0101', '0101', '1100', '0101', '1100']
    stats, __ = compare(est, true, 2)
    stats_relabeled, __ = compare(relabel(est), relabel(true), 2)
    assert format_report(stats) == format_report(stats_relabeled)


def test_omit_equals_removed_columns():
    est3 = ['01xx10', '10??01', '101101', '010010']
    est2 = ['0110', '1001', '1001', '0110']
    true = ['0101', '0110', '0101', '0110']
    stats_omit, __ = compare(est3, true, 2, omit={1})
    stats_plain, __ = compare(est2, true, 2)
    assert format_report(stats_omit) == format_report(stats_plain)
    assert list(stats_omit.sample_switches) == \
        list(stats_plain.sample_switches)


def test_skip_samples():
    stats, __ = compare(['xx01', 'yy10'], ['01', '01'], 1, skip=1)
    assert format_report(stats) == ['switch 1 / 1 = 1.000000']


def test_trio_pairs_skip_triple_het():
    est = ['0110', '0101', '0110', '1001']
    true = ['0110', '0101', '0110', '0101']
    stats, tracker = compare(est, true, 2, trio_partners=[1, 0])
    # markers 0 and 2 are triple het for both parents
    assert stats.num_trio_skipped == 4
    assert stats.num_het == 2
    assert stats.num_switches == 1
    assert list(stats.sample_switches) == [1, 0]


def test_trio_succession_skips_partner():
    est = ['0110', '0101', '0110', '1001']
    true = ['0110', '0101', '0110', '0101']
    stats, __ = compare(est, true, 2, trio_succession=True)
    assert stats.num_trio_skipped == 4
    assert stats.num_het == 2
    assert stats.num_switches == 1


def test_trio_same_transmitted_allele_not_skipped():
    stats, __ = compare(['0101', '1010'], ['0101', '0101'], 2,
                        trio_succession=True)
    assert stats.num_trio_skipped == 0
    assert stats.num_switches == 2


def test_trio_succession_needs_even_samples():
    with pytest.raises(InputError):
        compare(['01'], ['01'], 1, trio_succession=True)


def test_true_stream_shorter_is_fatal():
    with pytest.raises(ConsistencyError):
        compare(['01', '01'], ['01'], 1)


def test_true_stream_longer_is_ignored():
    stats, __ = compare(['01'], ['01', '01'], 1)
    assert stats.num_markers == 1


def test_verbose_blocks(capsys):
    compare(['01', '01', '10', '10'], ['01'] * 4, 1, verbose=True)
    err = capsys.readouterr().err.splitlines()
    assert err == ['0 0 2 2', '0 1 3 1']


def test_sample_table():
    stats, tracker = compare(['0101', '1001', '1001'],
                             ['0101', '0101', '0101'], 2)
    df = sample_table(stats, tracker)
    assert list(df['switches']) == [1, 0]
    assert list(df['het_sites']) == [2, 2]
    assert list(df['switch_rate']) == [0.5, 0.0]
    assert df['last_switch'][0] == 1
    assert pd.isna(df['last_switch'][1])
    assert list(df['final_block']) == [1, 2]


def write_ancestry(tmp_path, records):
    for samp, lines in enumerate(records):
        (tmp_path / f'hapmix.{samp}.5').write_text('\n'.join(lines) + '\n')
    return str(tmp_path / 'hapmix')


def test_ancestry_stratification(tmp_path):
    prefix = write_ancestry(tmp_path, [[
        '100 0.95 0.03 0.02',
        '200 0.95 0.03 0.02',
        '300 0.95 0.03 0.02',
        '400 0.10 0.85 0.05']])
    est = write_phgeno(tmp_path / 'est.phgeno', ['01', '01', '10', '10'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['01'] * 4)
    options = make_options(1, est, true, anc_prefix=prefix, chrom=5)
    stats, __ = run_switch(options)
    assert list(stats.anc_het) == [2, 0, 0, 1]
    assert list(stats.anc_switches) == [1, 0, 0, 0]
    assert format_report(stats, use_ancestry=True) == [
        'switch 1 / 3 = 0.333333',
        'Homozy_POP1:  1 / 2 = 0.500000',
        'Heterozygous: 0 / 0 = nan',
        'Homozy_POP2:  0 / 0 = nan',
        'Ambiguous:    0 / 1 = 0.000000']


def test_ancestry_read_for_trio_skipped_samples(tmp_path):
    pop1 = '1 1.0 0.0 0.0'
    prefix = write_ancestry(tmp_path, [[pop1] * 3, [pop1] * 3])
    est = write_phgeno(tmp_path / 'est.phgeno', ['0101', '0110', '1010'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['0101', '0110', '0101'])
    options = make_options(2, est, true, trio_succession=True,
                           anc_prefix=prefix, chrom=5)
    stats, __ = run_switch(options)
    assert stats.num_trio_skipped == 2
    assert list(stats.anc_switches) == [2, 0, 0, 0]


def test_ancestry_file_too_short(tmp_path):
    prefix = write_ancestry(tmp_path, [['100 0.95 0.03 0.02']])
    est = write_phgeno(tmp_path / 'est.phgeno', ['01', '10'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['01', '01'])
    options = make_options(1, est, true, anc_prefix=prefix, chrom=5)
    with pytest.raises(InputError):
        run_switch(options)


def test_switch_action(tmp_path, capsys):
    est = write_phgeno(tmp_path / 'est.phgeno', ['0101', '1001', '??01'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['0101'] * 3)
    table = tmp_path / 'samples.tsv'
    switch(['--sample_table', str(table), '2', est, true])
    out = capsys.readouterr().out.splitlines()
    assert out == ['switch 1 / 3 = 0.333333', 'missing 1 / 6 = 0.166667']
    df = pd.read_csv(table, sep='\t')
    assert list(df['sample']) == [0, 1]
    assert list(df['missing']) == [1, 0]


def test_switch_action_options(tmp_path, capsys):
    est = write_phgeno(tmp_path / 'est.phgeno', ['xx0110', 'xx0101'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['0110', '0101'])
    pairs = tmp_path / 'pairs.txt'
    pairs.write_text('0 1\n')
    switch(['-s', '1', '-p', str(pairs), '2', est, true])
    assert capsys.readouterr().out.splitlines() == ['switch 0 / 0 = nan']


@pytest.mark.parametrize('argv', [
    ['2', 'est.phgeno'],
    ['two', 'est.phgeno', 'true.phgeno'],
    ['-t', '-p', 'pairs.txt', '2', 'est.phgeno', 'true.phgeno'],
    ['-l', 'hapmix', '2', 'est.phgeno', 'true.phgeno'],
    ['2', 'no_such_est.phgeno', 'no_such_true.phgeno'],
])
def test_switch_action_usage_errors(tmp_path, monkeypatch, argv):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as e:
        switch(argv)
    assert e.value.code == 1


def test_switch_action_consistency_error(tmp_path, capsys):
    est = write_phgeno(tmp_path / 'est.phgeno', ['00'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['01'])
    with pytest.raises(SystemExit) as e:
        switch(['1', est, true])
    assert e.value.code == ABORT_EXIT_CODE
    captured = capsys.readouterr()
    assert captured.out == ''
    assert 'At locus 0, samp 0' in captured.err


def test_stats_ignore_uninformative_results():
    stats = SwitchStats(1)
    for result in ('missing-truth', 'homozygous', 'orientation-established'):
        stats.add(0, result)
    assert (stats.num_het, stats.num_switches, stats.num_missing) == \
        (0, 0, 0)


def test_omit_with_trio_succession():
    # sample 0 of the estimated file is omitted, the parents are true-file
    # samples 0 and 1
    est = ['010110', '100101', '010110', '111001']
    true = ['0110', '0101', '0110', '0101']
    stats, __ = compare(est, true, 2, omit={0}, trio_succession=True)
    assert stats.num_trio_skipped == 4
    assert stats.num_het == 2
    assert stats.num_switches == 1
    assert list(stats.sample_switches) == [1, 0]


def test_trio_partner_alleles_checked():
    with pytest.raises(ConsistencyError, match="unexpected allele 'x'"):
        compare(['0110'], ['011x'], 2, trio_succession=True)
    with pytest.raises(ConsistencyError):
        compare(['0110'], ['011x'], 2, trio_partners=[1, 0])


def test_many_ancestry_files_warning(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr('switcherror.phasing.compare.MAX_OPEN_ANC_FILES', 0)
    prefix = write_ancestry(tmp_path, [['100 0.95 0.03 0.02']])
    est = write_phgeno(tmp_path / 'est.phgeno', ['01'])
    true = write_phgeno(tmp_path / 'true.phgeno', ['01'])
    options = make_options(1, est, true, anc_prefix=prefix, chrom=5)
    stats, __ = run_switch(options)
    assert stats.num_markers == 1
    assert 'Warning: limitations on the number of open files' in \
        capsys.readouterr().err


@pytest.mark.parametrize('argv', [
    ['compare.py'],
    ['compare.py', 'swich'],
])
def test_main_lists_actions(monkeypatch, capsys, argv):
    monkeypatch.setattr('sys.argv', argv)
    with pytest.raises(SystemExit) as e:
        main()
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert 'Available ACTIONs:' in err
    assert 'switch | Count switch errors' in err
