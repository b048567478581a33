"""Tests for themes, tooltip text and the plotly renderer."""

import json

import pytest

from rto_map.map_state import InteractiveMap
from rto_map.map_view import STYLE_ROLES, THEMES, PlotlyMapRenderer, build_tooltip_lines, get_theme, hex_to_rgba
from rto_map.marker_placement import MarkerPlacement
from rto_map.rto_data import RegionRecord

from helpers import make_feature

LIGHT = THEMES['light']
DARK = THEMES['dark']


def test_tooltip_lines():
    assert build_tooltip_lines('Bidar', 'Karnataka', 3) == ['Bidar (Karnataka)', 'Click to explore 3 RTOs']
    assert build_tooltip_lines('Hassan', 'Karnataka', 1, is_current=True) == [
        'Hassan (Karnataka)',
        'Current district',
        'Click to explore 1 RTO',
    ]


def test_tooltip_lines_without_navigation():
    assert build_tooltip_lines('Bidar', 'Karnataka', 3, interactive=False) == ['Bidar (Karnataka)']
    assert build_tooltip_lines('Bidar', 'Karnataka', 0) == ['Bidar (Karnataka)']


def test_every_theme_defines_every_role():
    for theme in THEMES.values():
        assert set(theme.styles) == set(STYLE_ROLES)


def test_unknown_theme_falls_back_to_light():
    assert get_theme('sepia') is LIGHT
    assert get_theme('dark') is DARK


def test_hex_to_rgba():
    assert hex_to_rgba('#60a5fa', 0.25) == 'rgba(96, 165, 250, 0.25)'
    assert hex_to_rgba('#fff', 1) == 'rgba(255, 255, 255, 1)'


@pytest.fixture
def renderer():
    return PlotlyMapRenderer('Karnataka')


def test_boundary_trace_is_styled(renderer):
    renderer.draw_boundary('Bidar', make_feature('Bidar'), LIGHT.style('default'))
    trace = renderer.figure.data[0]
    assert trace.name == 'Bidar'
    assert trace.fill == 'toself'
    assert trace.fillcolor == 'rgba(96, 165, 250, 0.25)'

    renderer.set_style('Bidar', LIGHT.style('hover'))
    assert renderer.figure.data[0].line.color == LIGHT.style('hover').color
    assert len(renderer.figure.data) == 1


def test_redrawing_a_district_reuses_its_trace(renderer):
    renderer.draw_boundary('Bidar', make_feature('Bidar'), LIGHT.style('default'))
    renderer.draw_boundary('Bidar', make_feature('Bidar', lon=76.0), LIGHT.style('current'))
    assert len(renderer.figure.data) == 1
    assert renderer.figure.data[0].lon[0] == 76.0


def test_placeholder_recentres_map(renderer):
    renderer.draw_placeholder('Bidar', (17.9, 77.5), LIGHT.style('placeholder'), 'No boundary')
    assert renderer.figure.layout.map.center.lat == 17.9
    assert renderer.figure.data[0].mode == 'markers'


def test_markers_and_tooltip(renderer):
    placements = [
        MarkerPlacement(RegionRecord('KA-38', city='Bidar'), 17.9, 77.5, 1),
        MarkerPlacement(RegionRecord('KA-39', city='Bhalki', status='not-in-use'), 18.0, 77.2, 2),
    ]
    renderer.draw_markers(placements, 'KA-38', LIGHT)
    markers = renderer._trace('__markers__')
    assert list(markers.text) == ['1', '2']
    assert list(markers.marker.color) == [LIGHT.marker_current, LIGHT.marker_inactive]

    renderer.show_tooltip(['Bidar (Karnataka)'], (17.9, 77.5))
    assert renderer.tooltip_visible
    renderer.move_tooltip((18.0, 77.0))
    assert renderer.tooltip_position == (18.0, 77.0)
    renderer.hide_tooltip()
    assert not renderer.tooltip_visible

    renderer.clear_markers()
    assert not renderer._trace('__markers__').visible


def test_renderer_uses_tile_map_traces(renderer):
    assert renderer.figure.layout.map.style == 'carto-positron'
    assert renderer.figure.layout.map.center.lat == pytest.approx(15.3173)

    renderer.draw_boundary('Bidar', make_feature('Bidar'), LIGHT.style('default'))
    renderer.draw_markers([MarkerPlacement(RegionRecord('KA-38', city='Bidar'), 17.9, 77.5, 1)], None, LIGHT)
    renderer.show_tooltip(['Bidar (Karnataka)'], (17.9, 77.5))
    assert {trace.type for trace in renderer.figure.data} == {'scattermap'}


def test_interactive_map_builds_default_renderer():
    m = InteractiveMap('Karnataka', ['Bidar'], {}, current_district='Bidar', theme='dark')
    assert isinstance(m.renderer, PlotlyMapRenderer)
    assert m.renderer.figure.layout.map.style == 'carto-darkmatter'


def test_notice_and_theme(renderer):
    renderer.show_notice('Could not load boundary for Bidar, Karnataka')
    assert renderer.figure.layout.annotations[0].text == 'Could not load boundary for Bidar, Karnataka'

    renderer.set_theme(DARK)
    assert renderer.figure.layout.map.style == 'carto-darkmatter'
    assert renderer.figure.layout.annotations[0].bgcolor == DARK.notice_background

    renderer.show_notice(None)
    assert len(renderer.figure.layout.annotations) == 0


def test_clear_and_export(renderer, tmp_path):
    renderer.draw_boundary('Bidar', make_feature('Bidar'), LIGHT.style('default'))
    renderer.write_json(tmp_path / 'map.json')
    exported = json.loads((tmp_path / 'map.json').read_text())
    assert exported['data'][0]['name'] == 'Bidar'

    renderer.clear()
    assert len(renderer.figure.data) == 0
    renderer.draw_boundary('Hassan', make_feature('Hassan'), LIGHT.style('default'))
    assert renderer.figure.data[0].name == 'Hassan'
