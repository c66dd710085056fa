#!/usr/bin/env python3
"""
Load team members and channel configuration from a JSON file.

File shape:
  {
    "team": [
      {"name": "Moe", "slack_user_id": "U0123", "role": "founder", "is_founder": true,
       "timezone": "Asia/Karachi"}
    ],
    "channels": [
      {"channel_id": "C0123", "channel_name": "client_atmos", "channel_type": "client",
       "client_name": "Atmos", "requires_approval": true}
    ]
  }

Rows are upserted by Slack id, so the script can be re-run after edits.

Usage:
  ./scripts/seed_team.py team.json
  ./scripts/seed_team.py team.json --dry-run
  ./scripts/seed_team.py --sync-slack        # join and register every public channel
"""
import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from db import get_db, upsert_team_member, upsert_channel_config  # noqa: E402
from core.channels import join_all_channels  # noqa: E402

CHANNEL_TYPES = ('client', 'internal', 'project', 'general')


def load_seed(path):
    data = json.loads(Path(path).read_text())
    team = data.get('team', [])
    channels = data.get('channels', [])
    for member in team:
        for key in ('name', 'slack_user_id'):
            if not member.get(key):
                raise ValueError(f"Team member entry missing '{key}': {member}")
    for channel in channels:
        if not channel.get('channel_id') or not channel.get('channel_name'):
            raise ValueError(f"Channel entry needs channel_id and channel_name: {channel}")
        if channel.get('channel_type', 'general') not in CHANNEL_TYPES:
            raise ValueError(f"Unknown channel_type {channel.get('channel_type')!r} for {channel['channel_name']}")
    return team, channels


def seed(team, channels, db):
    for member in team:
        upsert_team_member(db, member['name'], member['slack_user_id'], role=member.get('role'),
                           is_founder=bool(member.get('is_founder')), timezone=member.get('timezone'))
        print(f"  member  {member['name']} ({member['slack_user_id']})")
    for channel in channels:
        channel_type = channel.get('channel_type', 'general')
        # Client channels always need approval, whatever the file says.
        requires_approval = channel_type == 'client' or bool(channel.get('requires_approval'))
        upsert_channel_config(db, channel['channel_id'], channel['channel_name'], channel_type=channel_type,
                              client_name=channel.get('client_name'), requires_approval=requires_approval)
        print(f"  channel #{channel['channel_name']} ({channel_type})")


def seed_file(path, dry_run=False):
    try:
        team, channels = load_seed(path)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Loaded {len(team)} team member(s) and {len(channels)} channel(s) from {path}")
    if dry_run:
        return

    db_gen = get_db()
    db = next(db_gen)
    try:
        seed(team, channels, db)
    finally:
        db.close()
    print("Done.")


def main():
    p = argparse.ArgumentParser(description='Seed team members and channel configuration')
    p.add_argument('path', nargs='?', help='JSON file with "team" and "channels" lists')
    p.add_argument('--dry-run', action='store_true', help='Validate the file without writing')
    p.add_argument('--sync-slack', action='store_true',
                   help='Join all public Slack channels and register unknown ones by name')
    args = p.parse_args()
    if not args.path and not args.sync_slack:
        p.error('give a seed file, --sync-slack, or both')

    if args.path:
        seed_file(args.path, args.dry_run)
    if args.sync_slack and not args.dry_run:
        sync = join_all_channels()
        print(f"Slack channels: {sync.joined} joined, {sync.already_in} already in, {sync.skipped} skipped")


if __name__ == '__main__':
    main()
