import json

import pytest
import yaml

from nmr_constraints.config.config_handler import (
    load_config_file,
    parse_arguments,
    validate_config,
)


@pytest.fixture
def correlations_file(tmp_path, ethanol_correlations_data):
    path = tmp_path / 'correlations.json'
    path.write_text(json.dumps(ethanol_correlations_data))
    return str(path)


@pytest.fixture
def base_config(tmp_path, correlations_file):
    return {
        'correlations_path': correlations_file,
        'molecular_formula': 'C2 H6 O',
        'output_directory': str(tmp_path),
    }


def test_defaults_are_filled(base_config):
    config = validate_config(base_config)

    assert config['molecular_formula'] == 'C2H6O'
    assert config['nucleus'] == '13C'
    assert config['base_name'] == 'compilation'
    assert config['tolerances']['C'] == 0.25
    assert config['tolerances']['H'] == 0.02
    assert config['lower_threshold'] == 0.1
    assert config['upper_threshold'] == 0.5
    assert config['shift_tolerance'] == 0.0
    assert config['n_workers'] == 1
    assert config['bond_distances'] == {'hmbc': [2, 3], 'cosy': [3, 4]}
    assert config['use_elim'] is False
    assert config['filter_paths'] == []
    assert config['fragments'] == []
    assert config['statistics_path'] is None
    assert config['training_set_path'] is None
    assert config['log_level'] == 'INFO'


def test_missing_required_fields(base_config):
    del base_config['molecular_formula']
    with pytest.raises(ValueError, match='molecular_formula'):
        validate_config(base_config)


def test_missing_files(tmp_path, base_config):
    with pytest.raises(FileNotFoundError):
        validate_config(dict(base_config, correlations_path=str(tmp_path / 'missing.json')))
    with pytest.raises(FileNotFoundError):
        validate_config(dict(base_config, output_directory=str(tmp_path / 'missing')))
    with pytest.raises(FileNotFoundError):
        validate_config(dict(base_config, statistics_path=str(tmp_path / 'statistics.pkl')))


def test_overrides(base_config):
    config = validate_config(dict(
        base_config,
        tolerances={'C': '0.5'},
        upper_threshold='0.8',
        hmbc_bond_distance=[2, 4],
        filter_paths='/filters/ring3, /filters/ring4',
        fragments=['CCO', {'smiles': 'C=O', 'include': False}],
        log_level='debug',
    ))

    assert config['tolerances']['C'] == 0.5
    assert config['tolerances']['H'] == 0.02
    assert config['upper_threshold'] == 0.8
    assert config['bond_distances']['hmbc'] == [2, 4]
    assert config['filter_paths'] == ['/filters/ring3', '/filters/ring4']
    assert config['fragments'] == [{'smiles': 'CCO', 'include': True}, {'smiles': 'C=O', 'include': False}]
    assert config['log_level'] == 'DEBUG'


@pytest.mark.parametrize('override', [
    {'lower_threshold': 1.5},
    {'upper_threshold': -0.1},
    {'n_workers': 0},
    {'cosy_bond_distance': [4, 3]},
    {'hmbc_bond_distance': [2]},
    {'fragments': [{'include': True}]},
    {'log_level': 'LOUD'},
])
def test_invalid_values(base_config, override):
    with pytest.raises(ValueError):
        validate_config(dict(base_config, **override))


def test_load_yaml_and_json(tmp_path, base_config):
    yaml_path = tmp_path / 'config.yaml'
    yaml_path.write_text(yaml.safe_dump(dict(base_config, use_elim=True)))
    json_path = tmp_path / 'config.json'
    json_path.write_text(json.dumps(base_config))

    assert load_config_file(str(yaml_path))['use_elim'] is True
    assert load_config_file(str(json_path))['molecular_formula'] == 'C2H6O'


def test_load_rejects_bad_files(tmp_path, base_config):
    with pytest.raises(FileNotFoundError):
        load_config_file(str(tmp_path / 'config.yaml'))

    text_path = tmp_path / 'config.txt'
    text_path.write_text(json.dumps(base_config))
    with pytest.raises(ValueError):
        load_config_file(str(text_path))

    list_path = tmp_path / 'list.yaml'
    list_path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config_file(str(list_path))


def test_parse_arguments():
    args = parse_arguments(['-c', 'config.yaml', '-v'])
    assert args.config == 'config.yaml'
    assert args.verbose is True

    with pytest.raises(SystemExit):
        parse_arguments([])
