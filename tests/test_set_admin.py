import set_admin


def test_grant_and_revoke(identity):
    assert set_admin.main(["alice"], provider=identity) == 0
    assert identity.admin_claims["alice"] is True
    assert set_admin.main(["alice", "--revoke"], provider=identity) == 0
    assert identity.admin_claims["alice"] is False


def test_unknown_user_fails(identity):
    assert set_admin.main(["ghost"], provider=identity) == 1
