# smartaudit/bridge/templates.py
"""Reference explanations and secure contract templates served by the assistant tools."""

VULNERABILITY_EXPLANATIONS = {
    "reentrancy": """# Reentrancy Attack

**Description**: A contract calls an external contract, which calls back into the original contract before the first call has finished and state has been updated.

**Example**:
```solidity
// Vulnerable code
function withdraw(uint amount) public {
    require(balances[msg.sender] >= amount);
    (bool ok, ) = msg.sender.call{value: amount}("");  // external call
    require(ok);
    balances[msg.sender] -= amount;                     // state change after the call
}
```

**Prevention**:
1. Use the checks-effects-interactions pattern
2. Use ReentrancyGuard from OpenZeppelin
3. Keep external calls last

**Secure Implementation**:
```solidity
function withdraw(uint amount) public nonReentrant {
    require(balances[msg.sender] >= amount);
    balances[msg.sender] -= amount;                     // state change first
    (bool ok, ) = msg.sender.call{value: amount}("");  // external call last
    require(ok, "Transfer failed");
}
```""",

    "integer_overflow": """# Integer Overflow/Underflow

**Description**: Arithmetic produces a value outside the range of its type and silently wraps around.

**Example**:
```solidity
// Vulnerable code (Solidity < 0.8.0)
uint256 balance = 100;
balance -= 200; // underflow: wraps to a huge number
```

**Prevention**:
1. Use Solidity 0.8.0+ built-in overflow checks
2. Use SafeMath on older compilers
3. Review every `unchecked` block

**Secure Implementation**:
```solidity
// Solidity 0.8.0+
require(balance >= amount, "Insufficient balance");
balance -= amount;
```""",

    "unchecked_call": """# Unchecked External Call

**Description**: The return value of a low-level `call`, `send` or `delegatecall` is ignored, so a failed transfer is treated as a success.

**Example**:
```solidity
// Vulnerable code
function pay(address payable to, uint amount) public {
    to.send(amount);  // return value ignored
    paid[to] = true;
}
```

**Prevention**:
1. Always check the boolean returned by low-level calls
2. Prefer `Address.sendValue` or SafeERC20 wrappers
3. Favour pull payments over push payments

**Secure Implementation**:
```solidity
function pay(address payable to, uint amount) public {
    paid[to] = true;
    (bool ok, ) = to.call{value: amount}("");
    require(ok, "Payment failed");
}
```""",

    "access_control": """# Access Control Vulnerabilities

**Description**: Missing or improper access control lets unauthorized users run privileged functions.

**Example**:
```solidity
// Vulnerable code
function withdraw() public {
    payable(owner).transfer(address(this).balance); // anyone can call this
}
```

**Prevention**:
1. Use modifier-based access control
2. Implement role-based permissions
3. Use OpenZeppelin Ownable or AccessControl

**Secure Implementation**:
```solidity
import "@openzeppelin/contracts/access/Ownable.sol";

contract MyContract is Ownable {
    function withdraw() public onlyOwner {
        payable(owner()).transfer(address(this).balance);
    }
}
```""",

    "denial_of_service": """# Denial of Service

**Description**: A contract can be blocked permanently, for example by a loop over an unbounded array that exceeds the block gas limit, or by a recipient that always reverts.

**Example**:
```solidity
// Vulnerable code
function refundAll() public {
    for (uint i = 0; i < investors.length; i++) {      // unbounded loop
        payable(investors[i]).transfer(amounts[i]);    // one revert blocks everyone
    }
}
```

**Prevention**:
1. Avoid loops over user-controlled, unbounded collections
2. Use pull payments so one failing recipient cannot block others
3. Process large batches in bounded chunks

**Secure Implementation**:
```solidity
mapping(address => uint) public refunds;

function claimRefund() public {
    uint amount = refunds[msg.sender];
    refunds[msg.sender] = 0;
    (bool ok, ) = msg.sender.call{value: amount}("");
    require(ok, "Refund failed");
}
```""",

    "front_running": """# Front-Running

**Description**: Pending transactions are public; an attacker sees a profitable transaction in the mempool and gets their own mined first with a higher gas price.

**Example**:
```solidity
// Vulnerable code
function solve(string memory answer) public {
    require(keccak256(bytes(answer)) == hash);
    payable(msg.sender).transfer(reward);   // answer visible before it is mined
}
```

**Prevention**:
1. Use commit-reveal schemes
2. Add slippage limits and deadlines to trades
3. Use batch auctions or private transaction relays

**Secure Implementation**:
```solidity
mapping(address => bytes32) public commitments;

function commit(bytes32 commitment) public {
    commitments[msg.sender] = commitment;
}

function reveal(string memory answer, bytes32 salt) public {
    require(commitments[msg.sender] == keccak256(abi.encodePacked(answer, salt, msg.sender)));
    require(keccak256(bytes(answer)) == hash);
    payable(msg.sender).transfer(reward);
}
```""",

    "timestamp_dependence": """# Timestamp Dependence

**Description**: Block timestamps can be nudged by block producers, so using them for randomness or tight deadlines lets a producer influence the outcome.

**Example**:
```solidity
// Vulnerable code
function play() public payable {
    if (block.timestamp % 15 == 0) {
        payable(msg.sender).transfer(address(this).balance);
    }
}
```

**Prevention**:
1. Never use `block.timestamp` as a source of randomness
2. Tolerate a drift of several seconds in time-based logic
3. Use a verifiable randomness oracle (e.g. Chainlink VRF)

**Secure Implementation**:
```solidity
// coarse-grained deadline, tolerant of small drift
require(block.timestamp >= saleStart + 1 days, "Sale not started");
```""",

    "tx_origin": """# tx.origin Authentication

**Description**: `tx.origin` is the externally owned account that started the transaction, not the immediate caller; a malicious contract called by the owner passes a `tx.origin == owner` check.

**Example**:
```solidity
// Vulnerable code
function transferTo(address payable dest, uint amount) public {
    require(tx.origin == owner);
    dest.transfer(amount);
}
```

**Prevention**:
1. Use `msg.sender` for authorization
2. Reserve `tx.origin` for rejecting contract callers, if at all

**Secure Implementation**:
```solidity
function transferTo(address payable dest, uint amount) public {
    require(msg.sender == owner, "Not owner");
    dest.transfer(amount);
}
```""",
}


SECURE_TEMPLATES = {
    "erc20_token": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/token/ERC20/ERC20.sol";
import "@openzeppelin/contracts/access/Ownable.sol";
import "@openzeppelin/contracts/utils/Pausable.sol";

contract SecureToken is ERC20, Ownable, Pausable {
    constructor(string memory name, string memory symbol, uint256 initialSupply)
        ERC20(name, symbol)
        Ownable(msg.sender)
    {
        _mint(msg.sender, initialSupply);
    }

    function pause() public onlyOwner { _pause(); }

    function unpause() public onlyOwner { _unpause(); }

    function mint(address to, uint256 amount) public onlyOwner {
        _mint(to, amount);
    }

    function _update(address from, address to, uint256 value) internal override whenNotPaused {
        super._update(from, to, value);
    }
}""",

    "erc721_nft": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/token/ERC721/ERC721.sol";
import "@openzeppelin/contracts/access/Ownable.sol";

contract SecureNFT is ERC721, Ownable {
    uint256 public constant MAX_SUPPLY = 10000;
    uint256 private _nextTokenId;

    constructor() ERC721("SecureNFT", "SNFT") Ownable(msg.sender) {}

    function safeMint(address to) public onlyOwner {
        require(_nextTokenId < MAX_SUPPLY, "Max supply reached");
        uint256 tokenId = _nextTokenId++;
        _safeMint(to, tokenId);
    }
}""",

    "multisig_wallet": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract MultiSigWallet {
    event Deposit(address indexed sender, uint amount, uint balance);
    event SubmitTransaction(address indexed owner, uint indexed txIndex, address indexed to, uint value, bytes data);
    event ConfirmTransaction(address indexed owner, uint indexed txIndex);
    event ExecuteTransaction(address indexed owner, uint indexed txIndex);

    struct Transaction {
        address to;
        uint value;
        bytes data;
        bool executed;
        uint numConfirmations;
    }

    address[] public owners;
    mapping(address => bool) public isOwner;
    uint public numConfirmationsRequired;
    mapping(uint => mapping(address => bool)) public isConfirmed;
    Transaction[] public transactions;

    modifier onlyOwner() {
        require(isOwner[msg.sender], "not owner");
        _;
    }

    modifier txExists(uint _txIndex) {
        require(_txIndex < transactions.length, "tx does not exist");
        _;
    }

    modifier notExecuted(uint _txIndex) {
        require(!transactions[_txIndex].executed, "tx already executed");
        _;
    }

    constructor(address[] memory _owners, uint _numConfirmationsRequired) {
        require(_owners.length > 0, "owners required");
        require(_numConfirmationsRequired > 0 && _numConfirmationsRequired <= _owners.length,
                "invalid number of required confirmations");
        for (uint i = 0; i < _owners.length; i++) {
            address owner = _owners[i];
            require(owner != address(0), "invalid owner");
            require(!isOwner[owner], "owner not unique");
            isOwner[owner] = true;
            owners.push(owner);
        }
        numConfirmationsRequired = _numConfirmationsRequired;
    }

    receive() external payable {
        emit Deposit(msg.sender, msg.value, address(this).balance);
    }

    function submitTransaction(address _to, uint _value, bytes memory _data) public onlyOwner {
        uint txIndex = transactions.length;
        transactions.push(Transaction({to: _to, value: _value, data: _data, executed: false, numConfirmations: 0}));
        emit SubmitTransaction(msg.sender, txIndex, _to, _value, _data);
    }

    function confirmTransaction(uint _txIndex) public onlyOwner txExists(_txIndex) notExecuted(_txIndex) {
        require(!isConfirmed[_txIndex][msg.sender], "tx already confirmed");
        transactions[_txIndex].numConfirmations += 1;
        isConfirmed[_txIndex][msg.sender] = true;
        emit ConfirmTransaction(msg.sender, _txIndex);
    }

    function executeTransaction(uint _txIndex) public onlyOwner txExists(_txIndex) notExecuted(_txIndex) {
        Transaction storage transaction = transactions[_txIndex];
        require(transaction.numConfirmations >= numConfirmationsRequired, "cannot execute tx");
        transaction.executed = true;
        (bool success, ) = transaction.to.call{value: transaction.value}(transaction.data);
        require(success, "tx failed");
        emit ExecuteTransaction(msg.sender, _txIndex);
    }
}""",

    "staking_contract": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/token/ERC20/IERC20.sol";
import "@openzeppelin/contracts/token/ERC20/utils/SafeERC20.sol";
import "@openzeppelin/contracts/utils/ReentrancyGuard.sol";

contract SecureStaking is ReentrancyGuard {
    using SafeERC20 for IERC20;

    IERC20 public immutable stakingToken;
    mapping(address => uint256) public balances;
    uint256 public totalStaked;

    event Staked(address indexed user, uint256 amount);
    event Withdrawn(address indexed user, uint256 amount);

    constructor(IERC20 _stakingToken) {
        stakingToken = _stakingToken;
    }

    function stake(uint256 amount) external nonReentrant {
        require(amount > 0, "Cannot stake 0");
        balances[msg.sender] += amount;
        totalStaked += amount;
        stakingToken.safeTransferFrom(msg.sender, address(this), amount);
        emit Staked(msg.sender, amount);
    }

    function withdraw(uint256 amount) external nonReentrant {
        require(amount > 0 && balances[msg.sender] >= amount, "Invalid amount");
        balances[msg.sender] -= amount;
        totalStaked -= amount;
        stakingToken.safeTransfer(msg.sender, amount);
        emit Withdrawn(msg.sender, amount);
    }
}""",

    "governance_token": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/token/ERC20/ERC20.sol";
import "@openzeppelin/contracts/token/ERC20/extensions/ERC20Permit.sol";
import "@openzeppelin/contracts/token/ERC20/extensions/ERC20Votes.sol";
import "@openzeppelin/contracts/utils/Nonces.sol";

contract GovernanceToken is ERC20, ERC20Permit, ERC20Votes {
    constructor(uint256 initialSupply) ERC20("GovernanceToken", "GOV") ERC20Permit("GovernanceToken") {
        _mint(msg.sender, initialSupply);
    }

    function _update(address from, address to, uint256 value) internal override(ERC20, ERC20Votes) {
        super._update(from, to, value);
    }

    function nonces(address owner) public view override(ERC20Permit, Nonces) returns (uint256) {
        return super.nonces(owner);
    }
}""",

    "Dutch_auction": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract DutchAuction {
    address payable public immutable seller;
    uint256 public immutable startingPrice;
    uint256 public immutable discountRate;
    uint256 public immutable startAt;
    uint256 public immutable expiresAt;
    bool public sold;

    event Bought(address indexed buyer, uint256 price);

    constructor(uint256 _startingPrice, uint256 _discountRate, uint256 _duration) {
        require(_startingPrice >= _discountRate * _duration, "starting price too low");
        seller = payable(msg.sender);
        startingPrice = _startingPrice;
        discountRate = _discountRate;
        startAt = block.timestamp;
        expiresAt = block.timestamp + _duration;
    }

    function getPrice() public view returns (uint256) {
        return startingPrice - discountRate * (block.timestamp - startAt);
    }

    function buy() external payable {
        require(!sold, "already sold");
        require(block.timestamp < expiresAt, "auction expired");
        uint256 price = getPrice();
        require(msg.value >= price, "ETH < price");
        sold = true;
        uint256 refund = msg.value - price;
        (bool paid, ) = seller.call{value: price}("");
        require(paid, "payment failed");
        if (refund > 0) {
            (bool refunded, ) = payable(msg.sender).call{value: refund}("");
            require(refunded, "refund failed");
        }
        emit Bought(msg.sender, price);
    }
}""",

    "escrow_contract": """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/utils/ReentrancyGuard.sol";

contract SecureEscrow is ReentrancyGuard {
    enum State { AwaitingPayment, AwaitingDelivery, Complete, Refunded }

    address public immutable buyer;
    address payable public immutable seller;
    address public immutable arbiter;
    State public state;

    event Deposited(uint256 amount);
    event Released(uint256 amount);
    event Refunded(uint256 amount);

    modifier onlyParty(address party) {
        require(msg.sender == party, "not authorized");
        _;
    }

    modifier inState(State expected) {
        require(state == expected, "invalid state");
        _;
    }

    constructor(address _buyer, address payable _seller, address _arbiter) {
        require(_buyer != address(0) && _seller != address(0) && _arbiter != address(0), "zero address");
        buyer = _buyer;
        seller = _seller;
        arbiter = _arbiter;
    }

    function deposit() external payable onlyParty(buyer) inState(State.AwaitingPayment) {
        require(msg.value > 0, "no funds");
        state = State.AwaitingDelivery;
        emit Deposited(msg.value);
    }

    function release() external nonReentrant inState(State.AwaitingDelivery) {
        require(msg.sender == buyer || msg.sender == arbiter, "not authorized");
        state = State.Complete;
        uint256 amount = address(this).balance;
        (bool ok, ) = seller.call{value: amount}("");
        require(ok, "release failed");
        emit Released(amount);
    }

    function refund() external nonReentrant onlyParty(arbiter) inState(State.AwaitingDelivery) {
        state = State.Refunded;
        uint256 amount = address(this).balance;
        (bool ok, ) = payable(buyer).call{value: amount}("");
        require(ok, "refund failed");
        emit Refunded(amount);
    }
}""",
}
