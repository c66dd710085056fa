"""Channel type detection, auto-registration and the delivery guard lookups."""

import pytest

from core.channels import handle_member_joined, handle_channel_created, join_all_channels, join_channel
from core.storage import get_channel_config
from core.team import detect_channel_type, resolve_channel_target, is_client_channel


@pytest.mark.parametrize('name,channel_type,client_name,requires_approval', [
    ('client_atmos-foundation', 'client', 'Atmos', True),
    ('client-blue-river-trial', 'client', 'Blue River', True),
    ('#client_acme_labs', 'client', 'Acme Labs', True),
    ('team-design', 'internal', None, False),
    ('team_ops', 'internal', None, False),
    ('random', 'general', None, False),
])
def test_detect_channel_type(name, channel_type, client_name, requires_approval):
    kind = detect_channel_type(name)
    assert (kind.channel_type, kind.client_name, kind.requires_approval) == \
        (channel_type, client_name, requires_approval)


def test_resolve_channel_target(team):
    assert resolve_channel_target('CCLIENT')[0] == 'CCLIENT'
    assert resolve_channel_target('#client_atmos-foundation')[0] == 'CCLIENT'
    assert resolve_channel_target('Team-General')[0] == 'CTEAM'
    # no partial matches for delivery targets
    assert resolve_channel_target('atmos') == ('atmos', None)


def test_is_client_channel(team):
    assert is_client_channel('CCLIENT')
    assert is_client_channel('client_atmos-foundation')
    assert is_client_channel('client_unseeded')
    assert not is_client_channel('CTEAM')
    assert not is_client_channel('CUNKNOWN')


def test_bot_joining_registers_channel(slack):
    slack.channel_names['CNEW'] = 'client_newco-momentum'
    channel = handle_member_joined({'type': 'member_joined_channel', 'user': 'UBOT', 'channel': 'CNEW'})

    assert channel.channel_type == 'client'
    stored = get_channel_config('CNEW')
    assert stored.client_name == 'Newco'
    assert stored.requires_approval


def test_other_members_joining_are_ignored(slack):
    assert handle_member_joined({'type': 'member_joined_channel', 'user': 'USARAH', 'channel': 'CNEW'}) is None
    assert get_channel_config('CNEW') is None


def test_seeded_channel_is_not_overwritten(team, slack):
    slack.channel_names['CTEAM'] = 'client_renamed'
    assert handle_member_joined({'type': 'member_joined_channel', 'user': 'UBOT', 'channel': 'CTEAM'}) is None
    assert get_channel_config('CTEAM').channel_type == 'internal'


def test_created_channel_is_joined_and_registered(slack):
    channel = handle_channel_created({'type': 'channel_created',
                                      'channel': {'id': 'CFRESH', 'name': 'team-launch'}})
    assert channel.channel_type == 'internal'
    assert slack.calls_to('conversations.join') == [{'channel': 'CFRESH'}]


def test_created_channel_that_cannot_be_joined(slack):
    slack.join_errors['CARCH'] = 'is_archived'
    assert handle_channel_created({'channel': {'id': 'CARCH', 'name': 'client_old'}}) is None
    assert get_channel_config('CARCH') is None


def test_join_channel_already_member(slack):
    slack.join_errors['CIN'] = 'already_in_channel'
    assert join_channel('CIN')


def test_join_all_channels(team, slack):
    slack.channel_pages = [
        [{'id': 'CTEAM', 'name': 'team-general', 'is_member': True},
         {'id': 'CA', 'name': 'client_alpha', 'is_member': False}],
        [{'id': 'CB', 'name': 'random', 'is_member': False},
         {'id': 'CPRIV', 'name': 'client_private', 'is_member': False}],
    ]
    slack.join_errors['CPRIV'] = 'method_not_supported_for_channel_type'

    sync = join_all_channels()

    assert (sync.joined, sync.already_in, sync.skipped) == (2, 1, 1)
    assert get_channel_config('CA').channel_type == 'client'
    assert get_channel_config('CB').channel_type == 'general'
    assert get_channel_config('CPRIV') is None
    assert get_channel_config('CTEAM').channel_type == 'internal'


def test_join_all_channels_stops_on_list_failure(slack):
    slack.fail_methods.add('conversations.list')
    sync = join_all_channels()
    assert (sync.joined, sync.already_in, sync.skipped) == (0, 0, 0)
