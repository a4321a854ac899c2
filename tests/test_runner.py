# -- Simulation Runner Tests -- #

import json

import pytest

from computationalFluids.GridSph.export.frameExporter import FrameExporter
from computationalFluids.GridSph.runner import GridSphRunner, buildParser, main
from computationalFluids.GridSph.scenarios.damBreak import DamBreakConfig, createDamBreak


def smallScenario(**overrides):
    damConfig = DamBreakConfig(nParticles=144, mapWidth=0.2, mapHeight=0.15, workerCount=1)
    for name, value in overrides.items():
        setattr(damConfig, name, value)
    return damConfig


def testRunDamBreakExports(tmp_path, capsys):
    runner = GridSphRunner()
    result = runner.runDamBreak(smallScenario(), exportDir=str(tmp_path), maxSteps=3)

    assert result['finalState'].step == 3
    assert not result['aborted']
    assert result['nFrames'] == 2

    data = FrameExporter.load(result['exportPath'])
    assert data['meta']['nParticles'] == 144
    assert [frame['step'] for frame in data['frames']] == [0, 3]

    output = capsys.readouterr().out
    assert 'DAM BREAK SIMULATION' in output
    assert 'Simulation complete.' in output


def testOutputIntervalFrames():
    runner = GridSphRunner()
    damConfig = smallScenario(outputInterval=0.01)
    result = runner.runDamBreak(damConfig, doExport=False, maxSteps=5, progressBar=True)

    # Initial frame, one frame per elapsed interval, final frame
    assert result['nFrames'] == 4
    assert result['exportPath'] is None


def testRunDamBreakSimpleModeWithBitonicSorter():
    runner = GridSphRunner()
    result = runner.runDamBreak(smallScenario(simulationMode='simple'), doExport=False, maxSteps=2)
    assert result['finalState'].occupiedCells == 0

    result = runner.runDamBreak(smallScenario(), doExport=False, maxSteps=2, sorterType='bitonic')
    assert result['finalState'].occupiedCells > 0


def testRunFromConfig(tmp_path):
    configPath = tmp_path / 'damBreak.json'
    configPath.write_text(json.dumps({
        'scenario': {'nParticles': 100, 'blockOriginX': 0.01, 'blockOriginY': 0.01},
        'map': {'max': [0.3, 0.2]},
        'fluid': {'restDensity': 1000.0, 'gravity': -1.0},
        'simulation': {'timeStep': 0.002, 'endTime': 0.0055, 'workers': 1},
    }))

    result = GridSphRunner().runFromConfig(str(configPath), doExport=False)
    assert result['finalState'].step == 3
    assert result['finalState'].dt == 0.002


def testMainRunsFixedSteps(capsys):
    main(['--steps', '1', '--no-export', '--workers', '1'])
    output = capsys.readouterr().out
    assert 'Total steps:' in output
    assert 'EXPORTING FRAME DATA' not in output


def testParserRejectsUnknownPreset():
    with pytest.raises(SystemExit):
        buildParser().parse_args(['--preset', 'huge'])


@pytest.mark.parametrize('size, expected', [
    ('8K', 8 * 1024),
    ('32K', 32 * 1024),
    ('64K', 64 * 1024),
])
def testParticleCountOption(monkeypatch, size, expected):
    captured = {}

    def recordScenario(self, damConfig, **kwargs):
        captured['damConfig'] = damConfig

    monkeypatch.setattr(GridSphRunner, 'runDamBreak', recordScenario)
    main(['--preset', 'standard', '--particles', size, '--no-export'])

    damConfig = captured['damConfig']
    assert damConfig.nParticles == expected
    config, particles = createDamBreak(damConfig)
    config.validate()
    particles.validate()
